"""
Outbreak Risk Engine - Reporting.

Text summaries and CSV export of the current snapshot set.
Used by the CLI, logs and the "export" action of a dashboard.
"""

import csv
import io
from pathlib import Path
from typing import Iterable, Optional, Union

from .types import FleetSummary, RiskSnapshot


CSV_COLUMNS = [
    "region_id",
    "name",
    "score",
    "tier",
    "confidence",
    "case_count",
    "water_quality_index",
    "population",
    "factors",
    "assessed_at",
]


def snapshots_to_csv(
    snapshots: Iterable[RiskSnapshot],
    path: Optional[Union[str, Path]] = None,
) -> str:
    """
    Export snapshots as CSV.

    Factors are joined with "; " into a single column.

    Args:
        snapshots: Snapshots to export
        path: If given, the CSV is also written to this file

    Returns:
        The CSV text
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()

    for snapshot in snapshots:
        row = snapshot.to_dict()
        row["factors"] = "; ".join(snapshot.factors)
        writer.writerow({k: row[k] for k in CSV_COLUMNS})

    text = buffer.getvalue()
    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
    return text


def format_fleet_summary(summary: FleetSummary) -> str:
    """
    Format a human-readable fleet summary.

    Useful for logging, alerts, and dashboards.
    """
    counts = summary.tier_counts
    lines = [
        "=" * 50,
        "OUTBREAK RISK SUMMARY",
        "=" * 50,
        f"Regions:           {summary.region_count}",
        f"Total Reports:     {summary.total_reports}",
        f"High-Risk Regions: {summary.high_tier_count}",
        f"Active Alerts:     {summary.active_alert_count}",
        f"Population:        {summary.total_population:,}",
        f"Avg Water Quality: {summary.average_water_quality:.1f}",
        "",
        "Tier Breakdown:",
        f"  High:   {counts.get('high', 0)}",
        f"  Medium: {counts.get('medium', 0)}",
        f"  Low:    {counts.get('low', 0)}",
        "=" * 50,
    ]
    return "\n".join(lines)


def format_region_report(snapshot: RiskSnapshot) -> str:
    """Answer "what is the risk in <region>" for one snapshot."""
    factors = ", ".join(snapshot.factors) if snapshot.factors else "none"
    return (
        f"{snapshot.display_name}: {snapshot.tier.value} risk "
        f"(score {snapshot.score:.1f}/100, confidence {snapshot.confidence}%). "
        f"Cases: {snapshot.case_count}, water quality: {snapshot.water_quality_index:.1f}, "
        f"population: {snapshot.population:,}. Factors: {factors}."
    )
