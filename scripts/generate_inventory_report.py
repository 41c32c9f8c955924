#!/usr/bin/env python3
"""
OpenStack Inventory Audit - Report Generator

Re-renders the Excel audit report from collector output, without
contacting the cloud again.

Usage:
    python3 scripts/generate_inventory_report.py --inventory osa_inv_120000.json --summary osa_sum_120000.json
    python3 scripts/generate_inventory_report.py -i osa_inv_120000.json -s osa_sum_120000.json -o audit.xlsx
"""
import argparse
import json
import os
import sys
from typing import Any, Dict, List, Tuple

# Add repository root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from osaudit.models import FleetSummary, InstanceReport, UnallocatedStorage  # noqa: E402
from osaudit.workbook import write_workbook  # noqa: E402


def load_json(filepath: str) -> Dict[str, Any]:
    """Load JSON file."""
    with open(filepath, 'r') as f:
        return json.load(f)


def parse_inventory(inventory: Dict[str, Any]) -> Tuple[List[InstanceReport], UnallocatedStorage]:
    """Rebuild report rows and unallocated disks from an osa_inv_*.json document."""
    reports = [InstanceReport.from_dict(row) for row in inventory.get('instances', [])]
    unallocated = UnallocatedStorage.from_dict(inventory.get('unallocated') or {})
    return reports, unallocated


def parse_summary(summary: Dict[str, Any]) -> Tuple[FleetSummary, bool]:
    """Rebuild the fleet summary (and snapshot flag) from an osa_sum_*.json document."""
    return (
        FleetSummary.from_dict(summary.get('summary') or {}),
        bool(summary.get('include_snapshots', True)),
    )


def generate_excel_report(inventory_path: str, summary_path: str, output_path: str) -> None:
    """Render the audit workbook from saved collector output."""
    reports, unallocated = parse_inventory(load_json(inventory_path))
    summary, include_snapshots = parse_summary(load_json(summary_path))

    write_workbook(
        output_path,
        reports,
        unallocated,
        summary,
        include_snapshots=include_snapshots,
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description='Generate the Excel audit report from OpenStack collector output',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 scripts/generate_inventory_report.py --inventory reports/osa_inv_120000.json --summary reports/osa_sum_120000.json
  python3 scripts/generate_inventory_report.py -i reports/osa_inv_120000.json -s reports/osa_sum_120000.json -o audit.xlsx
"""
    )

    parser.add_argument('--inventory', '-i', required=True,
                        help='Path to inventory JSON file (osa_inv_*.json)')
    parser.add_argument('--summary', '-s', required=True,
                        help='Path to summary JSON file (osa_sum_*.json)')
    parser.add_argument('--output', '-o', default='inventory_report.xlsx',
                        help='Output Excel file path (default: inventory_report.xlsx)')

    args = parser.parse_args()

    generate_excel_report(args.inventory, args.summary, args.output)


if __name__ == '__main__':
    main()
