"""
Tests for the Excel audit workbook.

Covers:
- Sheet order and the active sheet
- Summary rows and license histogram
- VM Report dynamic disk columns and floating IP formatting
- Unallocated Disks listing
"""
import os
import sys

import pytest
from openpyxl import load_workbook

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from osaudit.models import FleetSummary, InstanceReport, UnallocatedStorage
from osaudit.workbook import build_workbook, summary_rows, write_workbook

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def reports():
    return [
        InstanceReport(
            instance_id="srv-1",
            instance_name="web-01",
            flavor="v2.c4r8",
            license="Windows",
            disk_sizes=(40, 10, 100),
            floating_ips=("203.0.113.10", "203.0.113.11"),
        ),
        InstanceReport(
            instance_id="srv-2",
            instance_name="db-01",
            flavor="",
            license="",
            disk_sizes=(20,),
        ),
        InstanceReport(instance_id="srv-3", instance_name="scratch"),
    ]


@pytest.fixture
def unallocated():
    return UnallocatedStorage(total=35, names=("orphan-a", "orphan-b"), sizes=(25, 10))


@pytest.fixture
def summary():
    return FleetSummary(
        instance_count=3,
        total_storage=170,
        unallocated_storage=35,
        total_floating_ips=2,
        total_snapshots=4,
        total_snapshot_size=80,
        license_counts={"Windows": 1, "Generic OS": 2},
        total_vcpus=4,
        total_ram=8,
    )


def sheet_values(ws):
    """All rows of a worksheet as lists of cell values."""
    return [list(row) for row in ws.iter_rows(values_only=True)]


# =============================================================================
# Workbook Structure Tests
# =============================================================================

class TestWorkbookStructure:
    """Tests for overall workbook layout."""

    def test_sheet_order(self, reports, unallocated, summary):
        wb = build_workbook(reports, unallocated, summary)

        assert wb.sheetnames == ["Summary", "VM Report", "Unallocated Disks"]
        assert wb.active.title == "Summary"

    def test_write_workbook_round_trip(self, tmp_path, reports, unallocated, summary):
        path = tmp_path / "report-2024-01-01.xlsx"

        write_workbook(str(path), reports, unallocated, summary)

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "VM Report", "Unallocated Disks"]

    def test_empty_audit(self, tmp_path):
        path = tmp_path / "empty.xlsx"

        write_workbook(str(path), [], UnallocatedStorage(), FleetSummary())

        wb = load_workbook(path)
        assert sheet_values(wb["VM Report"]) == [["VM Name", "Flavor", "License", "VM ID", "Floating IPs"]]
        assert sheet_values(wb["Unallocated Disks"]) == [["Unallocated Disk Name", "Size (GB)"]]


# =============================================================================
# Summary Sheet Tests
# =============================================================================

class TestSummarySheet:
    """Tests for the Summary sheet."""

    def test_summary_rows_with_snapshots(self, summary):
        labels = [label for label, _ in summary_rows(summary)]

        assert labels[0] == "Total VM Count"
        assert "Total Snapshots" in labels
        assert "Total Snapshot Size (GB)" in labels

    def test_summary_rows_without_snapshots(self, summary):
        labels = [label for label, _ in summary_rows(summary, include_snapshots=False)]

        assert "Total Snapshots" not in labels
        assert "Total Snapshot Size (GB)" not in labels

    def test_summary_values(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["Summary"]

        assert ws["A1"].value == "Summary Report"
        values = {row[0]: row[1] for row in ws.iter_rows(min_row=3, values_only=True) if row[0]}
        assert values["Total VM Count"] == 3
        assert values["Total Storage (GB)"] == 170
        assert values["Unallocated Storage (GB)"] == 35
        assert values["Total Snapshot Size (GB)"] == 80
        assert values["Total vCPUs"] == 4
        assert values["Total RAM (GB)"] == 8

    def test_license_histogram_sorted(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["Summary"]
        rows = sheet_values(ws)

        header_index = rows.index(["License Type", "Count"])
        assert rows[header_index + 1] == ["Generic OS", 2]
        assert rows[header_index + 2] == ["Windows", 1]


# =============================================================================
# VM Report Sheet Tests
# =============================================================================

class TestVmReportSheet:
    """Tests for the VM Report sheet."""

    def test_disk_columns_sized_to_widest_row(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["VM Report"]
        header = sheet_values(ws)[0]

        assert header == [
            "VM Name", "Flavor", "License", "VM ID",
            "Disk 1 Size (GB)", "Disk 2 Size (GB)", "Disk 3 Size (GB)",
            "Floating IPs",
        ]

    def test_rows(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["VM Report"]
        rows = sheet_values(ws)[1:]

        assert rows[0] == ["web-01", "v2.c4r8", "Windows", "srv-1", 40, 10, 100,
                           "203.0.113.10, 203.0.113.11"]
        assert rows[1] == ["db-01", "", "", "srv-2", 20, None, None, ""]
        assert rows[2][0] == "scratch"

    def test_header_frozen(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["VM Report"]
        assert ws.freeze_panes == "A2"


# =============================================================================
# Unallocated Disks Sheet Tests
# =============================================================================

class TestUnallocatedDisksSheet:
    """Tests for the Unallocated Disks sheet."""

    def test_disks_in_scan_order(self, reports, unallocated, summary):
        ws = build_workbook(reports, unallocated, summary)["Unallocated Disks"]

        assert sheet_values(ws) == [
            ["Unallocated Disk Name", "Size (GB)"],
            ["orphan-a", 25],
            ["orphan-b", 10],
        ]
