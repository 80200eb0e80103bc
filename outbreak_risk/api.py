"""
Outbreak Risk Engine - Read API.

============================================================
PURPOSE
============================================================
HTTP surface for a rendering layer (dashboard, heatmap,
voice assistant) to pull the current risk state.

PRINCIPLES:
- Pull-based: clients poll, nothing is pushed
- Read-only except the selection cursor
- NO endpoint can trigger a refresh or an alert

============================================================
ROUTES
============================================================
GET  /health
GET  /summary
GET  /regions
GET  /regions/hot
GET  /regions/export.csv
GET  /regions/{region_id}
GET  /selected
POST /regions/{region_id}/select

Literal paths win over {region_id}: a region whose id is
"hot" or "export.csv" is listed by GET /regions and can be
selected, but has no GET /regions/{region_id} detail route.
See RESERVED_REGION_IDS.

============================================================
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from aiohttp import web

from .reporting import snapshots_to_csv
from .scheduler import RefreshScheduler


logger = logging.getLogger(__name__)


# Ids shadowed by literal routes under /regions/
RESERVED_REGION_IDS = frozenset({"hot", "export.csv"})


# ============================================================
# JSON ENCODER
# ============================================================

class RiskEncoder(json.JSONEncoder):
    """JSON encoder for engine types."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def json_response(data: Any, status: int = 200) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data, cls=RiskEncoder, indent=2),
        status=status,
        content_type="application/json",
    )


def _not_found(region_id: str) -> web.Response:
    return json_response({
        "status": "error",
        "error": f"Region {region_id} not found",
    }, status=404)


# ============================================================
# API HANDLERS
# ============================================================

class OutbreakRiskAPI:
    """
    HTTP handlers over a scheduler's store and summary.
    """

    def __init__(self, scheduler: RefreshScheduler):
        self._scheduler = scheduler
        self._store = scheduler.store
        self._warned_reserved = set()

    def _warn_reserved(self, snapshots) -> None:
        """Log once per region id that the detail route cannot reach."""
        for snapshot in snapshots:
            rid = snapshot.region_id
            if rid in RESERVED_REGION_IDS and rid not in self._warned_reserved:
                self._warned_reserved.add(rid)
                logger.warning(
                    f"Region id '{rid}' is shadowed by /regions/{rid}; "
                    f"it has no detail route"
                )

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health
        """
        last = self._scheduler.last_result
        return json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "outbreak-risk",
            "scheduler_running": self._scheduler.is_running,
            "tick_count": self._scheduler.tick_count,
            "last_tick_skipped": last.skipped if last else None,
        })

    async def get_summary(self, request: web.Request) -> web.Response:
        """
        GET /summary

        Fleet summary of the last successful tick.
        """
        return json_response({
            "status": "ok",
            "data": self._scheduler.latest_summary,
            "as_of": self._store.last_updated_at,
        })

    async def list_regions(self, request: web.Request) -> web.Response:
        """
        GET /regions

        Optional ?tier=low|medium|high filter.
        """
        snapshots = self._store.snapshots()
        self._warn_reserved(snapshots)

        tier = request.query.get("tier")
        if tier:
            snapshots = [s for s in snapshots if s.tier.value == tier.lower()]

        return json_response({
            "status": "ok",
            "count": len(snapshots),
            "data": snapshots,
        })

    async def hot_regions(self, request: web.Request) -> web.Response:
        """
        GET /regions/hot?limit=N

        HIGH-tier regions, highest score first.
        """
        limit = None
        raw_limit = request.query.get("limit")
        if raw_limit:
            try:
                limit = max(0, int(raw_limit))
            except ValueError:
                return json_response({
                    "status": "error",
                    "error": f"Invalid limit: {raw_limit}",
                }, status=400)

        hot = self._scheduler.aggregator.hot_regions(self._store.snapshots(), limit=limit)
        return json_response({
            "status": "ok",
            "count": len(hot),
            "data": hot,
        })

    async def export_csv(self, request: web.Request) -> web.Response:
        """
        GET /regions/export.csv
        """
        return web.Response(
            text=snapshots_to_csv(self._store.snapshots()),
            content_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="outbreak-risk.csv"'},
        )

    async def get_region(self, request: web.Request) -> web.Response:
        """
        GET /regions/{region_id}
        """
        region_id = request.match_info["region_id"]
        snapshot = self._store.get(region_id)
        if snapshot is None:
            return _not_found(region_id)

        return json_response({
            "status": "ok",
            "data": snapshot,
            "needs_attention": self._scheduler.aggregator.needs_attention(snapshot),
        })

    async def get_selected(self, request: web.Request) -> web.Response:
        """
        GET /selected
        """
        return json_response({
            "status": "ok",
            "region_id": self._store.selected(),
            "data": self._store.selected_snapshot(),
        })

    async def select_region(self, request: web.Request) -> web.Response:
        """
        POST /regions/{region_id}/select

        Moves the selection cursor. Unknown regions leave the
        cursor unchanged and return 404.
        """
        region_id = request.match_info["region_id"]
        if not self._store.select(region_id):
            return _not_found(region_id)

        logger.debug(f"Region {region_id} selected")
        return json_response({
            "status": "ok",
            "region_id": region_id,
        })


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(scheduler: RefreshScheduler) -> web.Application:
    """
    Create the API application.

    Returns an aiohttp Application with all routes configured.
    """
    api = OutbreakRiskAPI(scheduler)

    app = web.Application()

    app.router.add_get("/health", api.health)
    app.router.add_get("/summary", api.get_summary)
    app.router.add_get("/regions", api.list_regions)
    # Literal paths before the {region_id} pattern
    app.router.add_get("/regions/hot", api.hot_regions)
    app.router.add_get("/regions/export.csv", api.export_csv)
    app.router.add_get("/regions/{region_id}", api.get_region)
    app.router.add_get("/selected", api.get_selected)

    # Only non-read endpoint - moves the UI cursor, nothing else
    app.router.add_post("/regions/{region_id}/select", api.select_region)

    return app


def setup_routes(
    app: web.Application,
    scheduler: RefreshScheduler,
    prefix: str = "/api/outbreak",
) -> None:
    """Mount the API under a prefix of an existing application."""
    app.add_subapp(prefix, create_app(scheduler))
