"""
Data models for the OpenStack inventory audit.

Raw* models are the normalized shapes the collector produces from SDK
resources; InstanceReport, UnallocatedStorage and FleetSummary are the
derived artifacts handed to the exporters.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

# Instance metadata values as returned by the compute API
MetadataValue = Union[str, int, float, None]


# =============================================================================
# Raw Resources (collector output)
# =============================================================================

@dataclass(frozen=True)
class RawInstance:
    """Compute instance (Nova server)."""
    id: str
    name: str = ""
    flavor_id: str = ""
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    addresses: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VolumeAttachment:
    """Attachment record naming the instance a volume is attached to."""
    server_id: str
    device: str = ""


@dataclass(frozen=True)
class RawVolume:
    """Block storage volume (Cinder). Size is in whole GiB."""
    id: str
    name: str = ""
    size: int = 0
    attachments: List[VolumeAttachment] = field(default_factory=list)

    @property
    def is_unallocated(self) -> bool:
        return not self.attachments


@dataclass(frozen=True)
class RawPort:
    """Network port; device_id is the owning instance ID (if any)."""
    id: str
    device_id: str = ""


@dataclass(frozen=True)
class RawFloatingIP:
    """Floating IP, optionally bound to a port."""
    id: str
    floating_ip_address: str = ""
    port_id: Optional[str] = None


@dataclass(frozen=True)
class RawFlavor:
    """Flavor (instance size class)."""
    id: str
    name: str = ""


@dataclass(frozen=True)
class RawSnapshot:
    """Volume snapshot. Size is in whole GiB."""
    id: str
    name: str = ""
    size: int = 0
    volume_id: str = ""


@dataclass
class RawInventory:
    """The six point-in-time listings a reconciliation run works from."""
    instances: List[RawInstance] = field(default_factory=list)
    flavors: List[RawFlavor] = field(default_factory=list)
    volumes: List[RawVolume] = field(default_factory=list)
    ports: List[RawPort] = field(default_factory=list)
    floating_ips: List[RawFloatingIP] = field(default_factory=list)
    snapshots: List[RawSnapshot] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        """Number of records per collection (for logging)."""
        return {
            'instances': len(self.instances),
            'flavors': len(self.flavors),
            'volumes': len(self.volumes),
            'ports': len(self.ports),
            'floating_ips': len(self.floating_ips),
            'snapshots': len(self.snapshots),
        }


# =============================================================================
# Derived Artifacts
# =============================================================================

@dataclass(frozen=True)
class InstanceReport:
    """
    One reconciled row per instance.

    disk_sizes[0] is the boot disk, the rest are extra disks in ascending
    size order. license is the raw metadata value (normalized only when
    the fleet summary is built).
    """
    instance_id: str
    instance_name: str
    flavor: str = ""
    license: str = ""
    disk_sizes: Tuple[int, ...] = ()
    floating_ips: Tuple[str, ...] = ()

    @property
    def total_disk_size(self) -> int:
        return sum(self.disk_sizes)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['disk_sizes'] = list(self.disk_sizes)
        data['floating_ips'] = list(self.floating_ips)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InstanceReport':
        return cls(
            instance_id=data.get('instance_id', ''),
            instance_name=data.get('instance_name', ''),
            flavor=data.get('flavor', ''),
            license=data.get('license', ''),
            disk_sizes=tuple(data.get('disk_sizes') or ()),
            floating_ips=tuple(data.get('floating_ips') or ()),
        )


@dataclass(frozen=True)
class UnallocatedStorage:
    """
    Volumes with no attachments.

    names and sizes are index-parallel: sizes[i] is the size of names[i].
    """
    total: int = 0
    names: Tuple[str, ...] = ()
    sizes: Tuple[int, ...] = ()

    def __post_init__(self):
        if len(self.names) != len(self.sizes):
            raise ValueError(
                f"names and sizes must be the same length ({len(self.names)} != {len(self.sizes)})"
            )

    def disks(self) -> Iterator[Tuple[str, int]]:
        """Iterate (name, size) pairs in scan order."""
        return zip(self.names, self.sizes)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'total': self.total,
            'disks': [{'name': name, 'size_gb': size} for name, size in self.disks()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UnallocatedStorage':
        disks = data.get('disks') or []
        return cls(
            total=data.get('total', 0),
            names=tuple(d.get('name', '') for d in disks),
            sizes=tuple(d.get('size_gb', 0) for d in disks),
        )


@dataclass
class FleetSummary:
    """Fleet-wide aggregate statistics."""
    instance_count: int = 0
    total_storage: int = 0
    unallocated_storage: int = 0
    total_floating_ips: int = 0
    total_snapshots: int = 0
    total_snapshot_size: int = 0
    license_counts: Dict[str, int] = field(default_factory=dict)
    total_vcpus: int = 0
    total_ram: int = 0

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FleetSummary':
        return cls(
            instance_count=data.get('instance_count', 0),
            total_storage=data.get('total_storage', 0),
            unallocated_storage=data.get('unallocated_storage', 0),
            total_floating_ips=data.get('total_floating_ips', 0),
            total_snapshots=data.get('total_snapshots', 0),
            total_snapshot_size=data.get('total_snapshot_size', 0),
            license_counts=dict(data.get('license_counts') or {}),
            total_vcpus=data.get('total_vcpus', 0),
            total_ram=data.get('total_ram', 0),
        )


@dataclass
class AuditResult:
    """Everything a reconciliation run hands to the exporters."""
    reports: List[InstanceReport]
    summary: FleetSummary
    unallocated: UnallocatedStorage
