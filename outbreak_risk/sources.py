"""
Outbreak Risk Engine - Observation Sources.

============================================================
PURPOSE
============================================================
The inbound interface of the engine. A source supplies the
full per-region observation set on every refresh tick.

Acquisition transports (sensor feeds, field-worker reports)
live outside the engine; the adapters here cover in-process
data and files so the engine can run without a live feed.

============================================================
FAILURE CONTRACT
============================================================
fetch() either returns the complete set or raises.
ObservationFetchFailure is the expected error type; the
scheduler treats any exception as "skip this tick".

============================================================
"""

import asyncio
import csv
import inspect
import json
import logging
import math
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

from .types import InvalidObservation, ObservationFetchFailure, RegionObservation


logger = logging.getLogger(__name__)


# ============================================================
# SOURCE PROTOCOL
# ============================================================


class ObservationSource(Protocol):
    """Supplies raw region readings on each tick."""

    async def fetch(self) -> Sequence[RegionObservation]:
        """
        Return the complete observation set.

        Raises:
            ObservationFetchFailure: If the source is unavailable
        """
        ...


# ============================================================
# RECORD PARSING
# ============================================================


_FIELD_ALIASES = {
    "region_id": ("region_id", "regionId", "id", "state"),
    "case_count": ("case_count", "caseCount", "cases"),
    "water_quality_index": ("water_quality_index", "waterQualityIndex", "waterQuality"),
    "population": ("population",),
    "name": ("name", "region_name", "regionName"),
}


def _lookup(record: Mapping[str, Any], field_name: str) -> Any:
    for key in _FIELD_ALIASES[field_name]:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _count(value: Any, default: int) -> Union[int, float]:
    """
    Convert a count field. Non-finite values (JSON 1e999, "nan")
    are passed through as floats for the scorer to clamp.
    """
    if value is None:
        return default
    number = float(value)
    if not math.isfinite(number):
        return number
    return int(number)


def observation_from_record(record: Mapping[str, Any]) -> RegionObservation:
    """
    Build an observation from a JSON object or CSV row.

    Accepts snake_case or camelCase keys. Numeric values are
    converted but not range-checked; the scorer clamps them.

    Raises:
        InvalidObservation: If the record has no region id or a
                            numeric field is not a number
    """
    region_id = _lookup(record, "region_id")
    if region_id is None:
        raise InvalidObservation(f"Record without region id: {dict(record)}")
    region_id = str(region_id)

    try:
        case_count = _count(_lookup(record, "case_count"), default=0)
        water = _lookup(record, "water_quality_index")
        water_quality = float(water) if water is not None else 100.0
        population = _count(_lookup(record, "population"), default=1)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidObservation(
            f"Non-numeric field in record for {region_id}: {e}",
            region_id=region_id,
        ) from e

    name = _lookup(record, "name")

    return RegionObservation(
        region_id=region_id,
        case_count=case_count,
        water_quality_index=water_quality,
        population=population,
        name=str(name) if name is not None else None,
    )


# ============================================================
# IN-PROCESS SOURCES
# ============================================================


class StaticObservationSource:
    """
    Returns a fixed observation set, replaceable between ticks.
    """

    def __init__(self, observations: Optional[Iterable[RegionObservation]] = None):
        self._observations: List[RegionObservation] = list(observations or [])

    def set_observations(self, observations: Iterable[RegionObservation]) -> None:
        self._observations = list(observations)

    async def fetch(self) -> Sequence[RegionObservation]:
        return list(self._observations)


class CallableObservationSource:
    """
    Wraps a sync or async callable returning observations.

    Exceptions raised by the callable are reported as
    ObservationFetchFailure.
    """

    def __init__(self, fetcher: Callable[[], Any]):
        self._fetcher = fetcher

    async def fetch(self) -> Sequence[RegionObservation]:
        try:
            result = self._fetcher()
            if inspect.isawaitable(result):
                result = await result
        except ObservationFetchFailure:
            raise
        except Exception as e:
            raise ObservationFetchFailure(f"Observation fetcher failed: {e}") from e
        return list(result)


# ============================================================
# FILE SOURCE
# ============================================================


class FileObservationSource:
    """
    Reads observations from a JSON or CSV file on every tick.

    JSON: a list of objects, or {"regions": [...]}.
    CSV: a header row with region_id, case_count,
         water_quality_index, population and optional name.

    The file is re-read each tick, so edits show up on the
    next refresh.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def fetch(self) -> Sequence[RegionObservation]:
        return await asyncio.to_thread(self.read)

    def read(self) -> List[RegionObservation]:
        """
        Read and parse the file synchronously.

        Raises:
            ObservationFetchFailure: On any read or parse error
        """
        try:
            records = self._load_records()
            return [observation_from_record(r) for r in records]
        except InvalidObservation as e:
            raise ObservationFetchFailure(
                f"Invalid record in {self._path}: {e.message}",
                region_id=e.region_id,
            ) from e
        except (OSError, ValueError, OverflowError) as e:
            raise ObservationFetchFailure(f"Could not read {self._path}: {e}") from e

    def _load_records(self) -> List[Dict[str, Any]]:
        suffix = self._path.suffix.lower()

        if suffix == ".json":
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                data = data.get("regions", [])
            if not isinstance(data, list):
                raise ValueError("expected a list of region records")
            return [r for r in data if isinstance(r, dict)]

        if suffix == ".csv":
            with open(self._path, "r", encoding="utf-8", newline="") as f:
                return list(csv.DictReader(f))

        raise ValueError(f"unsupported file type '{suffix}' (use .json or .csv)")
