"""
Constants for the OpenStack inventory audit.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""
import re

# =============================================================================
# Byte/Size Conversion Constants
# =============================================================================

GB_PER_TB = 1024

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_OUTPUT_DIR = "."
DEFAULT_LOG_LEVEL = "INFO"

# =============================================================================
# Instance Metadata & Licensing
# =============================================================================

# Only metadata key consumed from server metadata
LICENSE_METADATA_KEY = "license_type"

# Fallback license labels for instances with no (or a "null") license_type.
# Earlier report revisions used "no-OS"; the current default is "Generic OS".
LICENSE_FALLBACK_GENERIC = "Generic OS"
LICENSE_FALLBACK_NO_OS = "no-OS"
DEFAULT_FALLBACK_LICENSE = LICENSE_FALLBACK_GENERIC

# License values treated as "unset"
UNSET_LICENSE_VALUES = ("", "null")

# Stored on a report row when the instance carries no license metadata
DEFAULT_LICENSE_LABEL = ""

# Stored on a report row when the flavor ID is not in the flavor listing
DEFAULT_FLAVOR_LABEL = ""

# =============================================================================
# Flavor Naming
# =============================================================================

# Flavor names encode capacity as vMAJOR.c<vCPUs>r<RAM GiB>, e.g. "v2.c4r8"
FLAVOR_CAPACITY_PATTERN = re.compile(r'v\d+\.c(\d+)r(\d+)')

# =============================================================================
# Report Output
# =============================================================================

REPORT_FILENAME_TEMPLATE = "report-{date}.xlsx"
REPORT_DATE_FORMAT = "%Y-%m-%d"

INVENTORY_FILE_PREFIX = "osa_inv"
SUMMARY_FILE_PREFIX = "osa_sum"
INSTANCES_CSV_FILENAME = "osa_instances.csv"
LOG_FILE_PREFIX = "osa_log"

SHEET_SUMMARY = "Summary"
SHEET_VM_REPORT = "VM Report"
SHEET_UNALLOCATED_DISKS = "Unallocated Disks"

FLOATING_IP_SEPARATOR = ", "

# =============================================================================
# Authentication Error Constants
# =============================================================================

# HTTP status codes that indicate auth/permission issues
OPENSTACK_AUTH_STATUS_CODES = {401, 403}

# keystoneauth / openstacksdk exception types that indicate auth issues
OPENSTACK_AUTH_EXCEPTION_NAMES = {
    'Unauthorized', 'Forbidden', 'AuthorizationFailure',
    'MissingAuthPlugin',
}
