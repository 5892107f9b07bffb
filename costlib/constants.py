"""
Constants for the monthly cost report.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Year Range Limits
# =============================================================================

MIN_YEAR = 2000
MAX_YEAR = 2100

# =============================================================================
# Response Column Candidates (first match wins, case-sensitive)
# =============================================================================

COST_COLUMN_CANDIDATES = ["PreTaxCost", "Cost", "totalCost"]
MONTH_COLUMN_CANDIDATES = ["UsageDate", "BillingMonth", "UsageMonth"]
CURRENCY_COLUMN_CANDIDATES = ["Currency"]

# =============================================================================
# Retry / Pacing
# =============================================================================

QUERY_MAX_ATTEMPTS = 6
THROTTLE_DELAY_SECONDS = 10
SERVER_ERROR_MAX_DELAY_SECONDS = 60
INTER_YEAR_PAUSE_SECONDS = 3

THROTTLE_STATUS_CODE = 429
THROTTLE_MESSAGE_MARKERS = ("429", "too many requests")

# =============================================================================
# Azure Endpoints & Token Scopes
# =============================================================================

ARM_SCOPE = "https://management.azure.com/.default"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_TIMEOUT_SECONDS = 30

# Azure CLI profile holding saved subscription contexts
AZURE_PROFILE_PATH = "~/.azure/azureProfile.json"

# =============================================================================
# Subscriptions & Authorization
# =============================================================================

INACTIVE_SCOPE_STATES = {"Disabled", "Deleted", "Expired"}

REQUIRED_ROLE_NAME = "Owner"

PRINCIPAL_USER = "user"
PRINCIPAL_SERVICE = "service"
PRINCIPAL_OBJECT = "object"

GUID_PATTERN = r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'

# Lowercased fragments of errors raised when the signed-in token cannot read
# the directory (Microsoft Graph) during a role-assignment lookup
GRAPH_SCOPE_ERROR_PATTERNS = (
    "insufficient privileges",
    "authorization_requestdenied",
    "aadsts65001",
    "consent_required",
    "interaction_required",
    "graph.microsoft.com",
)

# =============================================================================
# Report Output
# =============================================================================

SORT_ASC = "asc"
SORT_DESC = "desc"
SORT_CHOICES = (SORT_ASC, SORT_DESC)

CLIPBOARD_COMMANDS = [
    ["clip"],
    ["pbcopy"],
    ["wl-copy"],
    ["xclip", "-selection", "clipboard"],
    ["xsel", "--clipboard", "--input"],
]
