"""
Utility functions for the OpenStack inventory audit.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the run
         "Collection failed: {e}"
- WARNING: Partial issues, retries, loose config file permissions
           "Retrying list_volumes in 2 seconds..."
- INFO: Progress messages, resource counts
        "Found 42 servers"
        "Reconciled 42 instances..."
- DEBUG: Per-item detail that doesn't affect the overall report
         "Flavor 'custom.medium' does not encode capacity, skipping"
"""
import csv
import hashlib
import json
import logging
import os
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, TypeVar

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .constants import (
    GB_PER_TB,
    LOG_FILE_PREFIX,
    OPENSTACK_AUTH_EXCEPTION_NAMES,
    OPENSTACK_AUTH_STATUS_CODES,
)

if TYPE_CHECKING:
    from rich.progress import TaskID

    from .models import FleetSummary

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def _is_retryable(exc: BaseException) -> bool:
    return not is_auth_error(exc)


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 60,
    exceptions: tuple = (Exception,)
) -> Callable[[F], F]:
    """
    Retry the decorated call with exponential backoff (tenacity).

    Args:
        max_attempts: Total number of calls before giving up
        min_wait: Shortest pause between calls, in seconds
        max_wait: Longest pause between calls, in seconds
        exceptions: Only these exception types trigger another attempt;
            authentication failures are never retried

    The last exception is re-raised once attempts run out.

    Example:
        @retry_with_backoff(max_attempts=5, exceptions=(SDKException,))
        def list_servers(conn):
            ...
    """
    def decorator(func: F) -> F:
        return retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions) & retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )(func)
    return decorator


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Step-by-step progress for the collection phase.

    With a terminal attached a rich progress bar is drawn; otherwise (piped
    output, CI logs) each step is printed as a plain line.

    Usage:
        with ProgressTracker("OpenStack", total_steps=6) as tracker:
            tracker.start_step("Listing servers...")
            servers = list_servers(conn)
            tracker.complete_step("servers", len(servers))
    """

    def __init__(self, title: str, total_steps: int = 0, show_progress: bool = True):
        self.title = title
        self.total_steps = total_steps
        self.show_progress = show_progress and sys.stdout.isatty()

        self.completed_steps = 0
        self.resource_counts: Dict[str, int] = {}

        self._console: Optional[Console] = None
        self._progress: Optional[Progress] = None
        self._task_id: Optional["TaskID"] = None

    def __enter__(self):
        if self.show_progress:
            self._console = Console()
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self._console,
            )
            self._task_id = self._progress.add_task(
                f"{self.title} Collection", total=self.total_steps or 1
            )
            self._progress.start()
        else:
            self._print_banner(f"{self.title} Collection Starting")
            if self.total_steps:
                print(f"Steps: {self.total_steps}")
            print()

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._progress is not None:
            self._progress.stop()
            self._print_counts_rich()
        else:
            self._print_counts_plain()
        return False

    def start_step(self, task_description: str):
        """Show which listing is running."""
        if self._progress is not None:
            self._progress.update(self._task_id, description=f"{self.title} {task_description}")
        else:
            print(f"  {task_description}")

    def complete_step(self, resource_type: str, count: int):
        """Record a finished listing and advance the bar."""
        self.completed_steps += 1
        self.resource_counts[resource_type] = count
        if self._progress is not None:
            self._progress.update(self._task_id, advance=1)
        else:
            print(f"  Found {count:,} {resource_type}")

    @staticmethod
    def _print_banner(text: str):
        print(f"\n{'=' * 60}\n{text}\n{'=' * 60}")

    def _print_counts_rich(self):
        table = Table(title=f"{self.title} Collection Summary", show_header=False)
        table.add_column("Resource", style="cyan")
        table.add_column("Count", style="green", justify="right")
        for resource_type, count in self.resource_counts.items():
            table.add_row(resource_type, f"{count:,}")

        assert self._console is not None
        self._console.print()
        self._console.print(Panel(table))

    def _print_counts_plain(self):
        self._print_banner(f"{self.title} Collection Complete")
        for resource_type, count in self.resource_counts.items():
            print(f"  {resource_type + ':':<16} {count:,}")
        print()


def generate_run_id() -> str:
    """Run ID of the form YYYYMMDD-HHMMSS-<8 hex chars> (UTC)."""
    return f"{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


def get_timestamp() -> str:
    """Current UTC time, ISO 8601 with a trailing Z."""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def format_gb_to_tb(gb_value: float) -> float:
    """GiB -> TiB, rounded to two decimals."""
    if not gb_value:
        return 0.0
    return round(gb_value / GB_PER_TB, 2)


# =============================================================================
# Authentication Errors
# =============================================================================

class AuthError(Exception):
    """
    Keystone rejected the credentials or the project lacks permission.

    Raised instead of the SDK exception so the collector stops at once with
    a clear message rather than retrying or reporting a generic failure.
    """
    def __init__(self, message: str, cloud: str, original_error: Optional[Exception] = None):
        self.cloud = cloud
        self.original_error = original_error
        super().__init__(message)


def is_auth_error(exc: Exception) -> bool:
    """
    True when exc means "not authenticated" or "not allowed".

    Recognizes keystoneauth exceptions by type name (Unauthorized,
    Forbidden, AuthorizationFailure, MissingAuthPlugin) and any exception
    whose status_code, or response.status_code, is 401 or 403.
    """
    if type(exc).__name__ in OPENSTACK_AUTH_EXCEPTION_NAMES:
        return True

    status_code = getattr(exc, 'status_code', None)
    if status_code is None:
        status_code = getattr(getattr(exc, 'response', None), 'status_code', None)
    return status_code in OPENSTACK_AUTH_STATUS_CODES


def check_and_raise_auth_error(exc: Exception, context: str, cloud: str) -> None:
    """
    Convert an auth failure into AuthError; return quietly otherwise.

    Args:
        exc: The caught exception
        context: What was being attempted, e.g. "list servers"
        cloud: clouds.yaml cloud name, or "env" when using OS_* variables

    Raises:
        AuthError: If is_auth_error(exc)
    """
    if is_auth_error(exc):
        raise AuthError(
            f"Authentication/authorization error while trying to {context}: {exc}",
            cloud=cloud,
            original_error=exc
        ) from exc


# =============================================================================
# Log Redaction
# =============================================================================

def hash_sensitive_id(value: str, prefix: str = "") -> str:
    """
    Short, stable stand-in for an ID: first 8 hex chars of its SHA-256.

    Example: 0f8fad5b-d9cb-469f-a165-70867728950e -> id-<8 hex chars>
    """
    if not value:
        return value
    digest = hashlib.sha256(value.encode()).hexdigest()[:8]
    return prefix + digest


_LOG_REDACT_PATTERNS = [
    # Credentials passed around in auth dicts or URLs
    (re.compile(r"""(['"]?(?:password|secret|application_credential_secret|token)['"]?\s*[:=]\s*)(['"]?)[^\s,'"}]+\2""", re.IGNORECASE),
     lambda m: f"{m.group(1)}{m.group(2)}***{m.group(2)}"),
    # Keystone X-Auth-Token / X-Subject-Token headers
    (re.compile(r'(X-(?:Auth|Subject)-Token:\s*)\S+', re.IGNORECASE),
     lambda m: f"{m.group(1)}***"),
    # Server, volume, port and project UUIDs
    (re.compile(r'\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b', re.IGNORECASE),
     lambda m: hash_sensitive_id(m.group(0).lower(), "id-")),
    # Keystone project/domain IDs (32 hex chars, no dashes)
    (re.compile(r'\b[0-9a-f]{32}\b'), lambda m: hash_sensitive_id(m.group(0), "id-")),
]


def redact_log_message(message: str) -> str:
    """
    Mask credentials and replace resource IDs with stable hashes.

    The same ID always maps to the same hash, so lines about one resource
    can still be correlated in a log file.
    """
    if not message:
        return message

    for pattern, replacer in _LOG_REDACT_PATTERNS:
        message = pattern.sub(replacer, message)

    return message


class RedactingFilter(logging.Filter):
    """Applies redact_log_message to a record's message and string args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                redact_log_message(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


# =============================================================================
# Logging & Output
# =============================================================================

def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger for a collector run.

    Log lines always go to stderr. When output_dir is given they are also
    written, with credentials and IDs redacted, to osa_log_<timestamp>.log
    in that directory.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (case-insensitive)
        output_dir: Directory for the log file, or None for stderr only
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    # Repeated calls (tests, re-runs in one process) must not stack handlers
    root_logger.handlers.clear()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    log_file = None
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(output_dir, f"{LOG_FILE_PREFIX}_{stamp}.log")
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.addFilter(RedactingFilter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if log_file:
        root_logger.info(f"Logging to: {log_file}")

    return logging.getLogger(__name__)


def write_json(data: Any, filepath: str) -> None:
    """Write data as indented JSON, readable by the owner only."""
    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w') as f:
        json.dump(data, f, indent=2, default=str)
    print(f"Wrote {filepath}")


def write_csv(data: List[Dict], filepath: str, fieldnames: Optional[List[str]] = None) -> None:
    """
    Write a list of flat dicts as CSV.

    An empty list writes nothing unless fieldnames are given, in which case
    the file holds just the header row.
    """
    if not data and not fieldnames:
        return

    with open(filepath, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames or list(data[0]))
        writer.writeheader()
        writer.writerows(data)
    print(f"Wrote {filepath}")


def print_summary_table(summary: "FleetSummary", include_snapshots: bool = True) -> None:
    """Print the fleet summary and license histogram to console."""
    rows = [
        ("Instances", f"{summary.instance_count:,}"),
        ("Total Storage", f"{summary.total_storage:,} GB ({format_gb_to_tb(summary.total_storage):,.2f} TB)"),
        ("Unallocated Storage", f"{summary.unallocated_storage:,} GB"),
    ]
    if include_snapshots:
        rows.append(("Snapshots", f"{summary.total_snapshots:,} ({summary.total_snapshot_size:,} GB)"))
    rows.extend([
        ("Floating IPs", f"{summary.total_floating_ips:,}"),
        ("vCPUs", f"{summary.total_vcpus:,}"),
        ("RAM", f"{summary.total_ram:,} GB"),
    ])

    width = max([len(label) for label, _ in rows] + [len(name) for name in summary.license_counts])
    print()
    for label, value in rows:
        print(f"{label.ljust(width)} | {value}")

    if summary.license_counts:
        print("-" * (width + 3))
        for name, count in sorted(summary.license_counts.items()):
            print(f"{name.ljust(width)} | {count:,}")
    print()
