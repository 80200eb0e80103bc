"""
Tests for text summaries and CSV export.
"""

import csv
import io

from outbreak_risk.aggregation import AggregationEngine
from outbreak_risk.reporting import (
    CSV_COLUMNS,
    format_fleet_summary,
    format_region_report,
    snapshots_to_csv,
)
from outbreak_risk.scorer import RiskScorer
from outbreak_risk.types import FleetSummary, RegionObservation


def _snapshots():
    scorer = RiskScorer()
    return [
        scorer.assess(RegionObservation("kerala", 80, 20, 900_000, "Kerala")),
        scorer.assess(RegionObservation("goa", 5, 90, 10_000)),
    ]


class TestCsvExport:

    def test_header_and_rows(self):
        text = snapshots_to_csv(_snapshots())

        rows = list(csv.DictReader(io.StringIO(text)))

        assert list(rows[0].keys()) == CSV_COLUMNS
        assert rows[0]["region_id"] == "kerala"
        assert rows[0]["tier"] == "high"
        assert rows[0]["score"] == "83.0"
        assert rows[1]["name"] == "goa"

    def test_factors_joined(self):
        rows = list(csv.DictReader(io.StringIO(snapshots_to_csv(_snapshots()))))

        assert rows[0]["factors"] == (
            "High case density; Poor water quality; Population density; Weather patterns"
        )
        assert rows[1]["factors"] == "High case density"

    def test_writes_file(self, tmp_path):
        path = tmp_path / "export.csv"

        text = snapshots_to_csv(_snapshots(), path=path)

        assert path.read_text(encoding="utf-8") == text

    def test_empty_export_has_header(self):
        assert snapshots_to_csv([]) == ",".join(CSV_COLUMNS) + "\n"


class TestTextReports:

    def test_fleet_summary(self):
        summary = AggregationEngine().summarize(_snapshots())

        text = format_fleet_summary(summary)

        assert "OUTBREAK RISK SUMMARY" in text
        assert "High-Risk Regions: 1" in text
        assert "Population:        910,000" in text
        assert "Avg Water Quality: 55.0" in text

    def test_empty_fleet_summary(self):
        text = format_fleet_summary(FleetSummary())

        assert "Regions:           0" in text

    def test_region_report(self):
        text = format_region_report(_snapshots()[0])

        assert text.startswith("Kerala: high risk (score 83.0/100, confidence 96%).")
        assert "Factors: High case density, Poor water quality" in text
