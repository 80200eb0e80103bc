"""
Outbreak Risk Engine - Package.

============================================================
PURPOSE
============================================================
Continuously scores public-health outbreak risk for a set of
geographic regions and raises de-duplicated alerts when a
region enters the HIGH tier.

============================================================
WHAT IT IS
============================================================
- Deterministic, threshold-based scoring of three inputs:
  case count, water quality index, population
- Discrete tiers: LOW, MEDIUM, HIGH
- Fleet summaries for dashboards
- One alert per region per transition into HIGH

============================================================
WHAT IT IS NOT
============================================================
- NOT an epidemiological forecast model
- NOT a data acquisition layer (sensors, reports)
- NOT a persistence layer: no history is kept

============================================================
PIPELINE
============================================================
Every refresh tick (default 30 s):

    source.fetch() -> store.update() -> aggregator.summarize()
                   -> dispatcher.evaluate() -> sinks

============================================================
USAGE
============================================================
    import asyncio
    from outbreak_risk import (
        RegionObservation,
        StaticObservationSource,
        LoggingAlertSink,
        create_scheduler,
    )

    source = StaticObservationSource([
        RegionObservation("kerala", case_count=80,
                          water_quality_index=20, population=900_000),
    ])
    scheduler = create_scheduler(source, sinks=[LoggingAlertSink()])

    result = asyncio.run(scheduler.run_tick())
    print(result.summary.high_tier_count)          # 1
    print(scheduler.store.get("kerala").score)     # 83.0

============================================================
"""

# Types
from .types import (
    # Enums
    RiskTier,
    AlertState,

    # Data contracts
    RegionObservation,
    RiskSnapshot,
    FleetSummary,
    AlertEvent,

    # Exceptions
    OutbreakRiskError,
    ObservationFetchFailure,
    AlertSinkFailure,
    InvalidObservation,
    SnapshotUpdateError,
)

# Configuration
from .config import (
    ScoreThresholds,
    ScoringWeights,
    AlertingConfig,
    SchedulerConfig,
    TelegramConfig,
    OutbreakRiskConfig,
    get_default_config,
    get_config,
    set_config,
)

# Scoring
from .explainer import (
    RISK_FACTOR_CANDIDATES,
    RiskFactorExplainer,
    explain_tier,
)
from .scorer import (
    RiskScorer,
    score_observation,
    get_tier_from_score,
)

# State
from .store import RegionRiskStore
from .aggregation import AggregationEngine, summarize_snapshots

# Alerting
from .alerting import (
    AlertSink,
    LoggingAlertSink,
    CallbackAlertSink,
    TelegramAlertSink,
    AlertDispatcher,
    create_console_dispatcher,
    create_telegram_dispatcher,
)

# Sources
from .sources import (
    ObservationSource,
    StaticObservationSource,
    CallableObservationSource,
    FileObservationSource,
    observation_from_record,
)

# Scheduling
from .scheduler import (
    TickResult,
    RefreshScheduler,
    create_scheduler,
)

# Reporting
from .reporting import (
    snapshots_to_csv,
    format_fleet_summary,
    format_region_report,
)


__version__ = "1.0.0"

__all__ = [
    # Enums
    "RiskTier",
    "AlertState",

    # Data contracts
    "RegionObservation",
    "RiskSnapshot",
    "FleetSummary",
    "AlertEvent",

    # Exceptions
    "OutbreakRiskError",
    "ObservationFetchFailure",
    "AlertSinkFailure",
    "InvalidObservation",
    "SnapshotUpdateError",

    # Configuration
    "ScoreThresholds",
    "ScoringWeights",
    "AlertingConfig",
    "SchedulerConfig",
    "TelegramConfig",
    "OutbreakRiskConfig",
    "get_default_config",
    "get_config",
    "set_config",

    # Scoring
    "RISK_FACTOR_CANDIDATES",
    "RiskFactorExplainer",
    "explain_tier",
    "RiskScorer",
    "score_observation",
    "get_tier_from_score",

    # State
    "RegionRiskStore",
    "AggregationEngine",
    "summarize_snapshots",

    # Alerting
    "AlertSink",
    "LoggingAlertSink",
    "CallbackAlertSink",
    "TelegramAlertSink",
    "AlertDispatcher",
    "create_console_dispatcher",
    "create_telegram_dispatcher",

    # Sources
    "ObservationSource",
    "StaticObservationSource",
    "CallableObservationSource",
    "FileObservationSource",
    "observation_from_record",

    # Scheduling
    "TickResult",
    "RefreshScheduler",
    "create_scheduler",

    # Reporting
    "snapshots_to_csv",
    "format_fleet_summary",
    "format_region_report",
]
