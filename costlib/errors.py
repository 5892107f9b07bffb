"""
Exception taxonomy for the monthly cost report.

Input validation errors are raised before any network call. Scope and
authorization errors stop the run. Query errors abort the whole run; no
partial-year results are reported.
"""
from typing import List, Optional


class CostReportError(Exception):
    """Base class for all errors raised by the report engine."""


# =============================================================================
# Year Range Validation
# =============================================================================

class YearRangeError(CostReportError):
    """Invalid year range expression."""


class InvalidRangeFormat(YearRangeError):
    def __init__(self, expression: str):
        self.expression = expression
        super().__init__(
            f"Invalid year range '{expression}'. Use YYYY or YYYY:YYYY (e.g. 2024 or 2023:2025)"
        )


class RangeOutOfBounds(YearRangeError):
    def __init__(self, year: int, min_year: int, max_year: int):
        self.year = year
        super().__init__(f"Year {year} is outside the supported range {min_year}-{max_year}")


class RangeInverted(YearRangeError):
    def __init__(self, start_year: int, end_year: int):
        self.start_year = start_year
        self.end_year = end_year
        super().__init__(f"Start year {start_year} is after end year {end_year}")


# =============================================================================
# Configuration
# =============================================================================

class ConfigError(CostReportError):
    """The configuration file is missing or malformed."""


# =============================================================================
# Sign-in, Scope Resolution & Authorization
# =============================================================================

class SignInRequired(CostReportError):
    """No usable Azure sign-in is available."""


class ScopeError(CostReportError):
    """The target subscription could not be resolved."""


class ScopeNotFound(ScopeError):
    def __init__(self, scope_id: str, reason: str = ""):
        self.scope_id = scope_id
        detail = f": {reason}" if reason else ""
        super().__init__(f"Subscription {scope_id} not found or not accessible{detail}")


class ScopeInactive(ScopeError):
    def __init__(self, scope_id: str, state: str):
        self.scope_id = scope_id
        self.state = state
        super().__init__(f"Subscription {scope_id} is not active (state: {state})")


class NotAuthorized(ScopeError):
    def __init__(self, scope_id: str, principal_id: str, role_name: str):
        self.scope_id = scope_id
        self.principal_id = principal_id
        super().__init__(
            f"{principal_id} does not hold the {role_name} role on subscription {scope_id}"
        )


class ScopeLookupFailed(ScopeError):
    def __init__(self, message: str):
        super().__init__(f"Could not read subscriptions: {message}")


class NoActiveScopes(ScopeError):
    def __init__(self):
        super().__init__("No active subscriptions are visible to the signed-in account")


class NoAuthorizedScopes(ScopeError):
    def __init__(self, role_name: str):
        super().__init__(f"No active subscription grants the signed-in account the {role_name} role")


class AuthorizationCheckFailed(CostReportError):
    """The role-assignment lookup itself failed."""

    def __init__(self, scope_id: str, message: str, original_error: Optional[Exception] = None):
        self.scope_id = scope_id
        self.original_error = original_error
        super().__init__(f"Role check failed for subscription {scope_id}: {message}")


class DirectoryLookupError(CostReportError):
    """Microsoft Graph rejected a principal lookup."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


# =============================================================================
# Cost Query & Normalization
# =============================================================================

class QueryError(CostReportError):
    """A cost query for one year failed."""


class ApiError(QueryError):
    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.status_code = status
        self.message = message
        label = f"HTTP {status}" if status is not None else "HTTP error"
        super().__init__(f"{label}: {message}")


class ResponseError(QueryError):
    """The query response could not be normalized; never retried."""


class EmptyResponse(ResponseError):
    def __init__(self):
        super().__init__("Cost query returned an empty response")


class MissingColumns(ResponseError):
    def __init__(self, missing: List[str], available: List[str]):
        self.missing = missing
        self.available = available
        super().__init__(
            f"Response is missing required column(s) {', '.join(missing)}; "
            f"columns present: {', '.join(available) or 'none'}"
        )


class MalformedRow(ResponseError):
    def __init__(self, row_index: int, width: int, expected: int):
        self.row_index = row_index
        super().__init__(
            f"Row {row_index} of cost response has {width} cell(s); at least {expected} expected"
        )


class UnparseableDate(ResponseError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Cannot parse date value {value!r} in cost response")


class UnparseableCost(ResponseError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Cannot parse cost value {value!r} in cost response")
