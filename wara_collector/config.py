import logging
import os

# --- Configuration Constants ---

COLLECTOR_VERSION = "2.1.0"

# Catalog sources
RECOMMENDATIONS_URL = "https://azure.github.io/WARA-Build/objects/recommendations.json"
SPECIAL_TYPES_URL = "https://raw.githubusercontent.com/Azure/Azure-Proactive-Resiliency-Library-v2/main/tools/WARAinScopeResTypes.csv"
ADVISOR_METADATA_URL = "https://management.azure.com/providers/Microsoft.Advisor/metadata"
ADVISOR_METADATA_API_VERSION = "2023-01-01"
ARM_SCOPE = "https://management.azure.com/.default"
DOWNLOAD_TIMEOUT_SECONDS = 60

# Settings
ARG_PAGE_SIZE = 1000
OUTAGE_LOOKBACK_DAYS = 180
SUPPORT_TICKET_LOOKBACK_DAYS = 180
LOG_FILENAME = "wara_collector_log.txt"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
# Chatty below DEBUG: ARM/ARG SDK clients and the catalog downloads
QUIET_LOGGERS = (
    "azure.identity",
    "azure.mgmt",
    "azure.core.pipeline.policies.http_logging_policy",
    "urllib3",
)
REPORT_FILENAME_TEMPLATE = "WARA_File_{timestamp}.json"

# Fallback for anything a lookup could not resolve
UNKNOWN = "Unknown"
DEFAULT_SELECTOR = "APRL"
HIGH_AVAILABILITY_CATEGORY = "HighAvailability"

# Record types that describe a whole subscription rather than one resource
GLOBAL_RESOURCE_TYPES = {
    "microsoft.subscriptions/subscriptions",
    "microsoft.subscription/subscriptions",
}

# Validation actions
ACTION_APRL_QUERY = "APRL - Queries"
ACTION_UNDER_DEVELOPMENT = "IMPORTANT - Query under development - Validate Resources manually"
ACTION_CANNOT_VALIDATE_WITH_ARG = "IMPORTANT - Recommendation cannot be validated with ARGs - Validate Resources manually"
ACTION_AUTOMATION_UNAVAILABLE = "IMPORTANT - Automation not available - Validate Resources manually"
ACTION_QUERY_MISSING = "IMPORTANT - Query does not exist - Validate Resources manually"
ACTION_UNSUPPORTED_TYPE = "IMPORTANT - Resource Type is not available in either APRL or Advisor - Validate Resources manually if Applicable, if not Delete this line"

# Resource type summary constants
ASSESSMENT_OWNER = "APRL"
SUMMARY_STATUS = "Active"

CONFIG_FILE_SECTIONS = ("tenantid", "subscriptionids", "resourcegroups", "tags")


class CollectorParameterError(ValueError):
    """Raised when the collection scope is missing or malformed."""


def load_config_file(path):
    """Reads a sectioned config file into a dict of lists.

    Format::

        [tenantid]
        00000000-0000-0000-0000-000000000000

        [subscriptionids]
        /subscriptions/11111111-1111-1111-1111-111111111111

        [resourcegroups]
        /subscriptions/1111.../resourceGroups/rg-prod

        [tags]
        env==prod||staging
    """
    logger = logging.getLogger()
    if not os.path.exists(path):
        raise CollectorParameterError(f"Config file '{path}' not found.")

    values = {section: [] for section in CONFIG_FILE_SECTIONS}
    current = None
    with open(path, "r", encoding="utf-8") as f:
        for line_no, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("[") and line.endswith("]"):
                current = line[1:-1].strip().lower()
                if current not in values:
                    logger.warning(f"Ignoring unknown section [{current}] in {path} (line {line_no}).")
                    current = None
                continue
            if current is None:
                logger.debug(f"Skipping line {line_no} outside a known section: {line}")
                continue
            values[current].append(line)

    logger.info(f"Loaded config file {path}: " + ", ".join(f"{k}={len(v)}" for k, v in values.items()))
    return values
