#!/usr/bin/env python3
"""
OpenStack Inventory Audit - Collector

Lists servers, flavors, volumes, ports, floating IPs and volume snapshots
from an OpenStack project, reconciles them into one row per instance and
writes an Excel audit report plus JSON/CSV output.

Credentials come from clouds.yaml or the OS_* environment variables
(source your openrc file first).

Usage:
    python3 openstack_collect.py
    python3 openstack_collect.py --cloud production --region RegionOne
    python3 openstack_collect.py --output ./reports --fallback-license no-OS
    python3 openstack_collect.py --generate-config > osa-config.yaml
"""
import argparse
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, List, Optional

import openstack
from openstack import exceptions as os_exceptions

from osaudit.config import generate_sample_config, load_config, policy_from_config
from osaudit.constants import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RETRY_ATTEMPTS,
    INSTANCES_CSV_FILENAME,
    INVENTORY_FILE_PREFIX,
    REPORT_DATE_FORMAT,
    REPORT_FILENAME_TEMPLATE,
    SUMMARY_FILE_PREFIX,
)
from osaudit.models import (
    AuditResult,
    RawFlavor,
    RawFloatingIP,
    RawInstance,
    RawInventory,
    RawPort,
    RawSnapshot,
    RawVolume,
    VolumeAttachment,
)
from osaudit.reconcile import ReportPolicy, reconcile_inventory
from osaudit.utils import (
    AuthError,
    ProgressTracker,
    check_and_raise_auth_error,
    generate_run_id,
    get_timestamp,
    print_summary_table,
    retry_with_backoff,
    setup_logging,
    write_csv,
    write_json,
)
from osaudit.workbook import write_workbook

logger = logging.getLogger(__name__)

INSTANCE_CSV_FIELDS = [
    'instance_id',
    'instance_name',
    'flavor',
    'license',
    'disk_count',
    'total_disk_gb',
    'disk_sizes_gb',
    'floating_ips',
]


# =============================================================================
# Authentication
# =============================================================================

def get_connection(cloud: Optional[str] = None, region_name: Optional[str] = None):
    """
    Open an authenticated OpenStack connection.

    Uses the named clouds.yaml entry when given, otherwise the OS_* environment.
    OS_PROJECT_DOMAIN_ID wins over OS_PROJECT_DOMAIN_NAME when both are set.
    """
    kwargs: dict = {}
    if region_name:
        kwargs['region_name'] = region_name

    if os.environ.get('OS_PROJECT_DOMAIN_ID'):
        kwargs['project_domain_id'] = os.environ['OS_PROJECT_DOMAIN_ID']
    elif os.environ.get('OS_PROJECT_DOMAIN_NAME'):
        kwargs['project_domain_name'] = os.environ['OS_PROJECT_DOMAIN_NAME']

    cloud_label = cloud or 'env'
    try:
        conn = openstack.connect(cloud=cloud, **kwargs)
        # Force authentication now instead of on the first listing call
        conn.authorize()
    except Exception as e:
        check_and_raise_auth_error(e, "authenticate", cloud_label)
        raise

    logger.info(f"Authenticated to cloud '{cloud_label}'"
                + (f" in region {region_name}" if region_name else ""))
    return conn


# =============================================================================
# SDK Resource Conversion
# =============================================================================

def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read key from an SDK resource or a plain dict."""
    if hasattr(obj, key):
        return getattr(obj, key)
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def _flavor_ref(server: Any) -> str:
    """
    Flavor reference embedded in a server record ("" when the API omits it).

    Before compute microversion 2.47 this is the flavor ID. From 2.47 on Nova
    embeds only the flavor details, so the original flavor name is returned
    and resolve_flavor_refs() maps it back to an ID.
    """
    flavor = _field(server, 'flavor')
    if not flavor:
        return ""
    return _field(flavor, 'id') or _field(flavor, 'original_name') or ""


def server_to_instance(server: Any) -> RawInstance:
    return RawInstance(
        id=server.id,
        name=server.name or "",
        flavor_id=_flavor_ref(server),
        metadata=dict(_field(server, 'metadata') or {}),
        addresses=dict(_field(server, 'addresses') or {}),
    )


def volume_to_raw(volume: Any) -> RawVolume:
    attachments = [
        VolumeAttachment(
            server_id=_field(attachment, 'server_id') or "",
            device=_field(attachment, 'device') or "",
        )
        for attachment in (_field(volume, 'attachments') or [])
    ]
    return RawVolume(
        id=volume.id,
        name=volume.name or "",
        size=int(volume.size or 0),
        attachments=attachments,
    )


def resolve_flavor_refs(instances: List[RawInstance], flavors: List[RawFlavor]) -> List[RawInstance]:
    """
    Point every instance at a listed flavor ID where one can be found.

    A reference that is already a listed ID is kept. Otherwise it is taken as
    a flavor name (compute microversion 2.47+) and replaced by the ID of the
    first listed flavor with that name. Unknown references are left as they
    are, so a deleted flavor still reports an empty label.
    """
    known_ids = {f.id for f in flavors}
    ids_by_name: dict = {}
    for flavor in flavors:
        ids_by_name.setdefault(flavor.name, flavor.id)

    resolved = []
    for instance in instances:
        ref = instance.flavor_id
        if ref and ref not in known_ids and ref in ids_by_name:
            logger.debug(f"Resolved flavor name '{ref}' to ID for instance {instance.id}")
            instance = replace(instance, flavor_id=ids_by_name[ref])
        resolved.append(instance)
    return resolved


# =============================================================================
# Listings
# =============================================================================

@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_servers(conn) -> List[RawInstance]:
    """List all servers in the project (paginated by the SDK)."""
    servers = [server_to_instance(s) for s in conn.compute.servers(details=True)]
    logger.info(f"Found {len(servers)} servers")
    return servers


@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_flavors(conn) -> List[RawFlavor]:
    """List all flavors visible to the project."""
    flavors = [RawFlavor(id=f.id, name=f.name or "") for f in conn.compute.flavors()]
    logger.info(f"Found {len(flavors)} flavors")
    return flavors


@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_volumes(conn) -> List[RawVolume]:
    """List all block storage volumes."""
    volumes = [volume_to_raw(v) for v in conn.block_storage.volumes(details=True)]
    logger.info(f"Found {len(volumes)} volumes")
    return volumes


@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_ports(conn) -> List[RawPort]:
    """List all network ports."""
    ports = [RawPort(id=p.id, device_id=p.device_id or "") for p in conn.network.ports()]
    logger.info(f"Found {len(ports)} ports")
    return ports


@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_floating_ips(conn) -> List[RawFloatingIP]:
    """List all floating IPs."""
    fips = [
        RawFloatingIP(
            id=ip.id,
            floating_ip_address=ip.floating_ip_address or "",
            port_id=ip.port_id or None,
        )
        for ip in conn.network.ips()
    ]
    logger.info(f"Found {len(fips)} floating IPs")
    return fips


@retry_with_backoff(max_attempts=DEFAULT_RETRY_ATTEMPTS, exceptions=(os_exceptions.SDKException,))
def list_snapshots(conn) -> List[RawSnapshot]:
    """List all volume snapshots."""
    snapshots = [
        RawSnapshot(
            id=s.id,
            name=s.name or "",
            size=int(s.size or 0),
            volume_id=s.volume_id or "",
        )
        for s in conn.block_storage.snapshots(details=True)
    ]
    logger.info(f"Found {len(snapshots)} snapshots")
    return snapshots


def collect_inventory(
    conn,
    tracker: Optional[ProgressTracker] = None,
    cloud: str = 'env'
) -> RawInventory:
    """Fetch the six listings the audit is built from."""

    def collect_and_track(name: str, collect_fn: Callable[[Any], list]) -> list:
        """Helper to run one listing and update the tracker."""
        if tracker:
            tracker.start_step(f"Listing {name}...")
        try:
            result = collect_fn(conn)
        except Exception as e:
            check_and_raise_auth_error(e, f"list {name}", cloud)
            raise
        if tracker:
            tracker.complete_step(name, len(result))
        return result

    instances = collect_and_track("servers", list_servers)
    flavors = collect_and_track("flavors", list_flavors)

    return RawInventory(
        instances=resolve_flavor_refs(instances, flavors),
        flavors=flavors,
        volumes=collect_and_track("volumes", list_volumes),
        ports=collect_and_track("ports", list_ports),
        floating_ips=collect_and_track("floating IPs", list_floating_ips),
        snapshots=collect_and_track("snapshots", list_snapshots),
    )


# =============================================================================
# Output
# =============================================================================

def write_outputs(
    result: AuditResult,
    output_dir: str,
    policy: ReportPolicy,
    cloud: str,
    region: Optional[str] = None,
    write_excel: bool = True
) -> dict:
    """Write inventory/summary JSON, instance CSV and the Excel workbook."""
    run_id = generate_run_id()
    timestamp = get_timestamp()

    os.makedirs(output_dir, exist_ok=True)

    # Short timestamp for filenames (HHMMSS)
    file_ts = timestamp[11:19].replace(":", "")
    inv_file = os.path.join(output_dir, f"{INVENTORY_FILE_PREFIX}_{file_ts}.json")
    sum_file = os.path.join(output_dir, f"{SUMMARY_FILE_PREFIX}_{file_ts}.json")
    csv_file = os.path.join(output_dir, INSTANCES_CSV_FILENAME)

    inventory_data = {
        'run_id': run_id,
        'timestamp': timestamp,
        'cloud': cloud,
        'region': region,
        'instances': [r.to_dict() for r in result.reports],
        'unallocated': result.unallocated.to_dict(),
    }
    summary_data = {
        'run_id': run_id,
        'timestamp': timestamp,
        'cloud': cloud,
        'region': region,
        'fallback_license': policy.fallback_license,
        'include_snapshots': policy.include_snapshots,
        'summary': result.summary.to_dict(),
    }

    write_json(inventory_data, inv_file)
    write_json(summary_data, sum_file)

    csv_rows = [
        {
            'instance_id': r.instance_id,
            'instance_name': r.instance_name,
            'flavor': r.flavor,
            'license': r.license,
            'disk_count': len(r.disk_sizes),
            'total_disk_gb': r.total_disk_size,
            'disk_sizes_gb': ' '.join(str(size) for size in r.disk_sizes),
            'floating_ips': ' '.join(r.floating_ips),
        }
        for r in result.reports
    ]
    write_csv(csv_rows, csv_file, fieldnames=INSTANCE_CSV_FIELDS)

    files = {'inventory': inv_file, 'summary': sum_file, 'instances': csv_file}

    if write_excel:
        report_file = os.path.join(
            output_dir,
            REPORT_FILENAME_TEMPLATE.format(date=datetime.now().strftime(REPORT_DATE_FORMAT))
        )
        write_workbook(
            report_file,
            result.reports,
            result.unallocated,
            result.summary,
            include_snapshots=policy.include_snapshots,
        )
        files['report'] = report_file

    return files


# =============================================================================
# Main
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='OpenStack Inventory Audit - Collector')
    parser.add_argument('--config', help='Path to YAML config file')
    parser.add_argument('--cloud', help='Named cloud from clouds.yaml (default: OS_* environment)')
    parser.add_argument('--region', help='Region to audit (default: cloud default)')
    parser.add_argument('--output', help=f'Output directory (default: {DEFAULT_OUTPUT_DIR})')
    parser.add_argument('--log-level', help=f'Logging level (default: {DEFAULT_LOG_LEVEL})')
    parser.add_argument(
        '--fallback-license',
        help='License label for instances without license_type metadata (default: "Generic OS")'
    )
    parser.add_argument(
        '--skip-snapshots',
        action='store_true',
        help='Leave snapshot count and size out of the summary'
    )
    parser.add_argument('--no-excel', action='store_true', help='Skip writing the Excel report')
    parser.add_argument(
        '--generate-config',
        action='store_true',
        help='Print a sample config file and exit'
    )
    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return

    config = load_config(args)
    output_dir = args.output or DEFAULT_OUTPUT_DIR
    setup_logging(args.log_level or DEFAULT_LOG_LEVEL, output_dir=output_dir)
    policy = policy_from_config(config)
    cloud_label = args.cloud or 'env'

    try:
        conn = get_connection(args.cloud, args.region)

        with ProgressTracker("OpenStack", total_steps=6) as tracker:
            inventory = collect_inventory(conn, tracker, cloud=cloud_label)

        logger.info(f"Collected {inventory.counts()}")

        result = reconcile_inventory(inventory, policy)

        files = write_outputs(
            result,
            output_dir,
            policy,
            cloud=cloud_label,
            region=args.region,
            write_excel=not args.no_excel,
        )

        print("\nOutput files:")
        for label, path in files.items():
            print(f"  {label.capitalize()}: {path}")

        print_summary_table(result.summary, include_snapshots=policy.include_snapshots)

    except AuthError as e:
        logger.error(f"Authentication failed for cloud '{e.cloud}': {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Collection failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
