"""
OpenStack inventory audit shared library.
"""
# Import constants module for easy access
from . import constants
from .constants import (
    DEFAULT_FALLBACK_LICENSE,
    LICENSE_FALLBACK_GENERIC,
    LICENSE_FALLBACK_NO_OS,
)
from .models import (
    AuditResult,
    FleetSummary,
    InstanceReport,
    RawFlavor,
    RawFloatingIP,
    RawInstance,
    RawInventory,
    RawPort,
    RawSnapshot,
    RawVolume,
    UnallocatedStorage,
    VolumeAttachment,
)
from .reconcile import (
    FlavorCapacity,
    ReportPolicy,
    build_flavor_map,
    build_port_fip_map,
    calculate_unallocated_storage,
    generate_report,
    generate_summary,
    normalize_license,
    parse_flavor_capacity,
    reconcile_inventory,
)
from .utils import (
    generate_run_id,
    get_timestamp,
    setup_logging,
    write_csv,
    write_json,
)

__all__ = [
    # Constants
    'constants',
    'DEFAULT_FALLBACK_LICENSE',
    'LICENSE_FALLBACK_GENERIC',
    'LICENSE_FALLBACK_NO_OS',
    # Models
    'AuditResult',
    'FleetSummary',
    'InstanceReport',
    'RawFlavor',
    'RawFloatingIP',
    'RawInstance',
    'RawInventory',
    'RawPort',
    'RawSnapshot',
    'RawVolume',
    'UnallocatedStorage',
    'VolumeAttachment',
    # Reconciliation
    'FlavorCapacity',
    'ReportPolicy',
    'build_flavor_map',
    'build_port_fip_map',
    'calculate_unallocated_storage',
    'generate_report',
    'generate_summary',
    'normalize_license',
    'parse_flavor_capacity',
    'reconcile_inventory',
    # Utils
    'generate_run_id',
    'get_timestamp',
    'setup_logging',
    'write_json',
    'write_csv',
]
