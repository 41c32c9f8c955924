"""
Inventory reconciliation and fleet aggregation.

Joins the six independently fetched listings into one InstanceReport per
instance and folds those rows into a FleetSummary. Every lookup miss
degrades to a named default instead of raising; foreign keys that point at
nothing (attachments to unknown servers, floating IPs on unknown ports) are
ignored.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .constants import (
    DEFAULT_FALLBACK_LICENSE,
    DEFAULT_FLAVOR_LABEL,
    DEFAULT_LICENSE_LABEL,
    FLAVOR_CAPACITY_PATTERN,
    LICENSE_METADATA_KEY,
    UNSET_LICENSE_VALUES,
)
from .models import (
    AuditResult,
    FleetSummary,
    InstanceReport,
    MetadataValue,
    RawFlavor,
    RawFloatingIP,
    RawInstance,
    RawInventory,
    RawPort,
    RawSnapshot,
    RawVolume,
    UnallocatedStorage,
)

logger = logging.getLogger(__name__)


class FlavorCapacity(NamedTuple):
    """vCPU count and RAM (GiB) recovered from a flavor name."""
    vcpus: int
    ram: int


FlavorParser = Callable[[str], Optional[FlavorCapacity]]


def parse_flavor_capacity(label: str) -> Optional[FlavorCapacity]:
    """
    Recover vCPU/RAM capacity from a flavor name such as "v2.c4r8".

    Returns None when the name does not follow the vMAJOR.cNrM convention.
    """
    match = FLAVOR_CAPACITY_PATTERN.search(label or "")
    if not match:
        return None
    return FlavorCapacity(vcpus=int(match.group(1), 10), ram=int(match.group(2), 10))


@dataclass(frozen=True)
class ReportPolicy:
    """
    Tunable summary policy.

    Args:
        fallback_license: Label counted for instances with no license_type
        include_snapshots: Whether snapshot count/size go into the summary
        flavor_parser: Maps a flavor name to its capacity (or None)
    """
    fallback_license: str = DEFAULT_FALLBACK_LICENSE
    include_snapshots: bool = True
    flavor_parser: FlavorParser = parse_flavor_capacity


# =============================================================================
# Unallocated Storage
# =============================================================================

def calculate_unallocated_storage(volumes: Iterable[RawVolume]) -> UnallocatedStorage:
    """Total and list volumes with no attachments, in input order."""
    total = 0
    names: List[str] = []
    sizes: List[int] = []

    for volume in volumes:
        if volume.is_unallocated:
            total += volume.size
            names.append(volume.name)
            sizes.append(volume.size)

    return UnallocatedStorage(total=total, names=tuple(names), sizes=tuple(sizes))


# =============================================================================
# Lookup Tables
# =============================================================================

def build_flavor_map(flavors: Iterable[RawFlavor]) -> Dict[str, str]:
    """Map flavor ID -> flavor name."""
    return {flavor.id: flavor.name for flavor in flavors}


def build_port_fip_map(floating_ips: Iterable[RawFloatingIP]) -> Dict[str, List[str]]:
    """Map port ID -> floating IP addresses bound to it, in listing order."""
    port_to_fips: Dict[str, List[str]] = {}
    for fip in floating_ips:
        if fip.port_id:
            port_to_fips.setdefault(fip.port_id, []).append(fip.floating_ip_address)
    return port_to_fips


# =============================================================================
# Per-Instance Reconciliation
# =============================================================================

def resolve_license(metadata: Mapping[str, MetadataValue]) -> str:
    """Read the raw license_type metadata value as a string."""
    if LICENSE_METADATA_KEY not in metadata:
        return DEFAULT_LICENSE_LABEL
    value = metadata[LICENSE_METADATA_KEY]
    # JSON null is reported the same way an explicit "null" string is
    if value is None:
        return "null"
    return str(value)


def resolve_flavor(flavor_id: str, flavor_map: Mapping[str, str]) -> str:
    """Flavor name for an instance, or the default label when unknown."""
    return flavor_map.get(flavor_id, DEFAULT_FLAVOR_LABEL)


def attached_volumes(instance_id: str, volumes: Iterable[RawVolume]) -> List[RawVolume]:
    """Every volume with an attachment naming instance_id, in listing order."""
    attached = []
    for volume in volumes:
        for attachment in volume.attachments:
            if attachment.server_id == instance_id:
                attached.append(volume)
    return attached


def split_boot_disk(volumes: Sequence[RawVolume]) -> Tuple[Optional[RawVolume], List[RawVolume]]:
    """
    Pick the boot disk: the attached volume whose name sorts first.

    Returns (boot, remaining volumes); boot is None with no volumes.
    """
    by_name = sorted(volumes, key=lambda v: v.name)
    if not by_name:
        return None, []
    return by_name[0], by_name[1:]


def sort_extra_disk_sizes(extras: Iterable[RawVolume]) -> List[int]:
    """Sizes of the non-boot volumes, numerically ascending."""
    return sorted(v.size for v in extras)


def order_disk_sizes(volumes: Sequence[RawVolume]) -> List[int]:
    """Boot disk size first, then the extra disks' sizes ascending."""
    boot, extras = split_boot_disk(volumes)
    if boot is None:
        return []
    return [boot.size] + sort_extra_disk_sizes(extras)


def resolve_floating_ips(
    instance_id: str,
    ports: Iterable[RawPort],
    port_to_fips: Mapping[str, Sequence[str]]
) -> List[str]:
    """Floating IPs reachable through the instance's ports."""
    addresses: List[str] = []
    for port in ports:
        if port.device_id == instance_id:
            addresses.extend(port_to_fips.get(port.id, ()))
    return addresses


def build_instance_report(
    instance: RawInstance,
    ports: Sequence[RawPort],
    volumes: Sequence[RawVolume],
    port_to_fips: Mapping[str, Sequence[str]],
    flavor_map: Mapping[str, str]
) -> InstanceReport:
    """Reconcile a single instance against the other listings."""
    flavor = resolve_flavor(instance.flavor_id, flavor_map)
    if not flavor:
        logger.debug(f"Flavor {instance.flavor_id!r} of instance {instance.id} not found")

    return InstanceReport(
        instance_id=instance.id,
        instance_name=instance.name,
        flavor=flavor,
        license=resolve_license(instance.metadata),
        disk_sizes=tuple(order_disk_sizes(attached_volumes(instance.id, volumes))),
        floating_ips=tuple(resolve_floating_ips(instance.id, ports, port_to_fips)),
    )


def generate_report(
    instances: Iterable[RawInstance],
    ports: Sequence[RawPort],
    volumes: Sequence[RawVolume],
    port_to_fips: Mapping[str, Sequence[str]],
    flavor_map: Mapping[str, str]
) -> List[InstanceReport]:
    """One InstanceReport per instance, in input order."""
    return [
        build_instance_report(instance, ports, volumes, port_to_fips, flavor_map)
        for instance in instances
    ]


# =============================================================================
# Fleet Summary
# =============================================================================

def normalize_license(label: str, fallback: str = DEFAULT_FALLBACK_LICENSE) -> str:
    """Substitute the fallback label for unset ("" or "null") licenses."""
    if label in UNSET_LICENSE_VALUES:
        return fallback
    return label


def generate_summary(
    reports: Iterable[InstanceReport],
    unallocated_storage: int,
    snapshots: Sequence[RawSnapshot],
    policy: ReportPolicy = ReportPolicy()
) -> FleetSummary:
    """Fold report rows and snapshots into fleet-wide totals."""
    summary = FleetSummary(unallocated_storage=unallocated_storage)

    for entry in reports:
        summary.instance_count += 1
        summary.total_storage += entry.total_disk_size
        summary.total_floating_ips += len(entry.floating_ips)

        license_label = normalize_license(entry.license, policy.fallback_license)
        summary.license_counts[license_label] = summary.license_counts.get(license_label, 0) + 1

        capacity = policy.flavor_parser(entry.flavor)
        if capacity is not None:
            summary.total_vcpus += capacity.vcpus
            summary.total_ram += capacity.ram
        elif entry.flavor:
            logger.debug(f"Flavor {entry.flavor!r} does not encode capacity, skipping")

    if policy.include_snapshots:
        summary.total_snapshots = len(snapshots)
        summary.total_snapshot_size = sum(snap.size for snap in snapshots)

    return summary


def reconcile_inventory(inventory: RawInventory, policy: ReportPolicy = ReportPolicy()) -> AuditResult:
    """Run the scanner, reconciler and aggregator over one inventory."""
    flavor_map = build_flavor_map(inventory.flavors)
    port_to_fips = build_port_fip_map(inventory.floating_ips)

    unallocated = calculate_unallocated_storage(inventory.volumes)
    logger.info(
        f"Found {len(unallocated.names)} unallocated volumes ({unallocated.total} GB)"
    )

    reports = generate_report(
        inventory.instances, inventory.ports, inventory.volumes, port_to_fips, flavor_map
    )
    summary = generate_summary(reports, unallocated.total, inventory.snapshots, policy)
    logger.info(
        f"Reconciled {summary.instance_count} instances: {summary.total_storage} GB attached, "
        f"{summary.total_floating_ips} floating IPs"
    )

    return AuditResult(reports=reports, summary=summary, unallocated=unallocated)
