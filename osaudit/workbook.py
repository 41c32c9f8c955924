"""
Excel rendering of the inventory audit.

Creates a workbook with:
- Summary tab: fleet totals and the license histogram
- VM Report tab: one row per instance with its disks and floating IPs
- Unallocated Disks tab: volumes with no attachments
"""
import logging
from typing import Any, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .constants import (
    FLOATING_IP_SEPARATOR,
    SHEET_SUMMARY,
    SHEET_UNALLOCATED_DISKS,
    SHEET_VM_REPORT,
)
from .models import FleetSummary, InstanceReport, UnallocatedStorage

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
TITLE_FONT = Font(name="Calibri", size=16, bold=True, color="1F4E79")

VM_REPORT_FIXED_HEADERS = ["VM Name", "Flavor", "License", "VM ID"]


def _style_header_row(ws: Any, row: int, columns: int) -> None:
    for col in range(1, columns + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')


def summary_rows(summary: FleetSummary, include_snapshots: bool = True) -> List[tuple]:
    """(label, value) pairs shown in the Summary sheet, in display order."""
    rows = [
        ("Total VM Count", summary.instance_count),
        ("Total Storage (GB)", summary.total_storage),
        ("Unallocated Storage (GB)", summary.unallocated_storage),
    ]
    if include_snapshots:
        rows.extend([
            ("Total Snapshots", summary.total_snapshots),
            ("Total Snapshot Size (GB)", summary.total_snapshot_size),
        ])
    rows.extend([
        ("Total Floating IPs", summary.total_floating_ips),
        ("Total vCPUs", summary.total_vcpus),
        ("Total RAM (GB)", summary.total_ram),
    ])
    return rows


def create_summary_sheet(wb: Any, summary: FleetSummary, include_snapshots: bool = True) -> None:
    """Create the Summary sheet and make it active."""
    ws = wb.create_sheet(title=SHEET_SUMMARY, index=0)

    ws['A1'] = "Summary Report"
    ws['A1'].font = TITLE_FONT

    row = 3
    for label, value in summary_rows(summary, include_snapshots):
        ws.cell(row=row, column=1, value=label).font = Font(bold=True)
        ws.cell(row=row, column=2, value=value)
        row += 1

    row += 1
    ws.cell(row=row, column=1, value="License Type")
    ws.cell(row=row, column=2, value="Count")
    _style_header_row(ws, row, 2)

    for license_label, count in sorted(summary.license_counts.items()):
        row += 1
        ws.cell(row=row, column=1, value=license_label)
        ws.cell(row=row, column=2, value=count)

    ws.column_dimensions['A'].width = 28
    ws.column_dimensions['B'].width = 14

    wb.active = wb.index(ws)


def create_vm_report_sheet(wb: Any, reports: Sequence[InstanceReport]) -> None:
    """Create the VM Report sheet with one disk column per disk slot."""
    ws = wb.create_sheet(title=SHEET_VM_REPORT)

    max_disks = max((len(entry.disk_sizes) for entry in reports), default=0)
    header = list(VM_REPORT_FIXED_HEADERS)
    header.extend(f"Disk {i} Size (GB)" for i in range(1, max_disks + 1))
    header.append("Floating IPs")

    for col, title in enumerate(header, 1):
        ws.cell(row=1, column=col, value=title)
    _style_header_row(ws, 1, len(header))

    fixed = len(VM_REPORT_FIXED_HEADERS)
    for row, entry in enumerate(reports, 2):
        ws.cell(row=row, column=1, value=entry.instance_name)
        ws.cell(row=row, column=2, value=entry.flavor)
        ws.cell(row=row, column=3, value=entry.license)
        ws.cell(row=row, column=4, value=entry.instance_id)

        for i, size in enumerate(entry.disk_sizes):
            ws.cell(row=row, column=fixed + 1 + i, value=size)

        ws.cell(
            row=row,
            column=fixed + 1 + max_disks,
            value=FLOATING_IP_SEPARATOR.join(entry.floating_ips)
        )

    ws.column_dimensions['A'].width = 30
    ws.column_dimensions['B'].width = 18
    ws.column_dimensions['C'].width = 16
    ws.column_dimensions['D'].width = 38
    for col in range(fixed + 1, fixed + 1 + max_disks):
        ws.column_dimensions[get_column_letter(col)].width = 16
    ws.column_dimensions[get_column_letter(fixed + 1 + max_disks)].width = 32
    ws.freeze_panes = 'A2'


def create_unallocated_disks_sheet(wb: Any, unallocated: UnallocatedStorage) -> None:
    """Create the Unallocated Disks sheet."""
    ws = wb.create_sheet(title=SHEET_UNALLOCATED_DISKS)

    ws['A1'] = "Unallocated Disk Name"
    ws['B1'] = "Size (GB)"
    _style_header_row(ws, 1, 2)

    for row, (name, size) in enumerate(unallocated.disks(), 2):
        ws.cell(row=row, column=1, value=name)
        ws.cell(row=row, column=2, value=size)

    ws.column_dimensions['A'].width = 40
    ws.column_dimensions['B'].width = 12


def build_workbook(
    reports: Sequence[InstanceReport],
    unallocated: UnallocatedStorage,
    summary: FleetSummary,
    include_snapshots: bool = True
) -> Workbook:
    """Assemble the three-sheet audit workbook in memory."""
    wb = Workbook()
    default_sheet = wb.active

    create_summary_sheet(wb, summary, include_snapshots)
    create_vm_report_sheet(wb, reports)
    create_unallocated_disks_sheet(wb, unallocated)

    wb.remove(default_sheet)
    return wb


def write_workbook(
    path: str,
    reports: Sequence[InstanceReport],
    unallocated: UnallocatedStorage,
    summary: FleetSummary,
    include_snapshots: bool = True
) -> None:
    """Render the audit workbook and save it to path."""
    wb = build_workbook(reports, unallocated, summary, include_snapshots)
    wb.save(path)
    logger.info(f"Saved workbook with {len(reports)} instance rows to {path}")
    print(f"Wrote {path}")
