"""
Tests for audit data models.
"""
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from osaudit.models import (
    FleetSummary,
    InstanceReport,
    RawInventory,
    RawSnapshot,
    RawVolume,
    UnallocatedStorage,
    VolumeAttachment,
)


class TestRawVolume:
    """Tests for RawVolume."""

    def test_unattached_is_unallocated(self):
        assert RawVolume(id="v1", name="a", size=10).is_unallocated is True

    def test_attached_is_allocated(self):
        volume = RawVolume(id="v1", attachments=[VolumeAttachment(server_id="s1")])
        assert volume.is_unallocated is False


class TestRawInventory:
    """Tests for RawInventory."""

    def test_counts(self):
        inventory = RawInventory(
            volumes=[RawVolume(id="v1"), RawVolume(id="v2")],
            snapshots=[RawSnapshot(id="s1")],
        )

        counts = inventory.counts()

        assert counts['volumes'] == 2
        assert counts['snapshots'] == 1
        assert counts['instances'] == 0
        assert set(counts) == {'instances', 'flavors', 'volumes', 'ports', 'floating_ips', 'snapshots'}


class TestInstanceReport:
    """Tests for InstanceReport."""

    def test_total_disk_size(self):
        report = InstanceReport(instance_id="i", instance_name="n", disk_sizes=(20, 5, 15))
        assert report.total_disk_size == 40

    def test_total_disk_size_no_disks(self):
        assert InstanceReport(instance_id="i", instance_name="n").total_disk_size == 0

    def test_to_dict_uses_lists(self):
        report = InstanceReport(
            instance_id="i-1",
            instance_name="web",
            flavor="v2.c4r8",
            license="Windows",
            disk_sizes=(40, 100),
            floating_ips=("203.0.113.5",),
        )

        data = report.to_dict()

        assert data == {
            'instance_id': 'i-1',
            'instance_name': 'web',
            'flavor': 'v2.c4r8',
            'license': 'Windows',
            'disk_sizes': [40, 100],
            'floating_ips': ['203.0.113.5'],
        }

    def test_from_dict_partial(self):
        """Missing keys fall back to empty values."""
        report = InstanceReport.from_dict({'instance_id': 'i-2', 'disk_sizes': [10]})

        assert report.instance_id == 'i-2'
        assert report.instance_name == ''
        assert report.disk_sizes == (10,)
        assert report.floating_ips == ()


class TestUnallocatedStorage:
    """Tests for UnallocatedStorage."""

    def test_mismatched_lengths_rejected(self):
        with pytest.raises(ValueError, match="same length"):
            UnallocatedStorage(total=10, names=("a", "b"), sizes=(10,))

    def test_to_dict(self):
        storage = UnallocatedStorage(total=15, names=("a", "b"), sizes=(10, 5))

        assert storage.to_dict() == {
            'total': 15,
            'disks': [{'name': 'a', 'size_gb': 10}, {'name': 'b', 'size_gb': 5}],
        }

    def test_from_dict_empty(self):
        storage = UnallocatedStorage.from_dict({})

        assert storage.total == 0
        assert storage.names == ()
        assert storage.sizes == ()


class TestFleetSummary:
    """Tests for FleetSummary."""

    def test_defaults(self):
        summary = FleetSummary()

        assert summary.instance_count == 0
        assert summary.license_counts == {}

    def test_license_counts_not_shared(self):
        first = FleetSummary()
        first.license_counts['Windows'] = 1

        assert FleetSummary().license_counts == {}

    def test_from_dict(self):
        summary = FleetSummary.from_dict({
            'instance_count': 3,
            'total_storage': 50,
            'license_counts': {'Generic OS': 2, 'Windows': 1},
            'total_vcpus': 8,
        })

        assert summary.instance_count == 3
        assert summary.total_storage == 50
        assert summary.license_counts == {'Generic OS': 2, 'Windows': 1}
        assert summary.total_vcpus == 8
        assert summary.total_ram == 0
