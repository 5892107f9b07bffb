"""
Monthly cost report shared library.
"""
from . import constants
from .aggregate import AggregationDriver
from .authorization import (
    AuthorizationResolver,
    ReauthLatch,
    RoleAssignmentLookup,
    is_graph_scope_error,
    principal_kind,
)
from .errors import (
    ApiError,
    AuthorizationCheckFailed,
    ConfigError,
    CostReportError,
    DirectoryLookupError,
    EmptyResponse,
    InvalidRangeFormat,
    MalformedRow,
    MissingColumns,
    NoActiveScopes,
    NoAuthorizedScopes,
    NotAuthorized,
    QueryError,
    RangeInverted,
    RangeOutOfBounds,
    ResponseError,
    ScopeError,
    ScopeInactive,
    ScopeLookupFailed,
    ScopeNotFound,
    SignInRequired,
    UnparseableCost,
    UnparseableDate,
    YearRangeError,
)
from .identity import SessionProvider, decode_token_claims, principal_from_claims
from .models import (
    BillingScope,
    CostReport,
    MonthPlan,
    MonthTotal,
    Principal,
    ReportRow,
    SavedSession,
    YearRange,
)
from .normalize import normalize
from .periods import parse_year_range, resolve_months, year_window
from .query import RetryingQueryClient
from .retry import RetryPolicy, attempt_with_retry, classify_failure
from .scopes import ScopeDirectory, ScopeSelector, choose_scope

__all__ = [
    'constants',
    # Models
    'BillingScope',
    'CostReport',
    'MonthPlan',
    'MonthTotal',
    'Principal',
    'ReportRow',
    'SavedSession',
    'YearRange',
    # Periods & normalization
    'parse_year_range',
    'resolve_months',
    'year_window',
    'normalize',
    # Querying
    'RetryPolicy',
    'attempt_with_retry',
    'classify_failure',
    'RetryingQueryClient',
    'AggregationDriver',
    # Identity, authorization & scopes
    'SessionProvider',
    'decode_token_claims',
    'principal_from_claims',
    'AuthorizationResolver',
    'ReauthLatch',
    'RoleAssignmentLookup',
    'is_graph_scope_error',
    'principal_kind',
    'ScopeDirectory',
    'ScopeSelector',
    'choose_scope',
    # Errors
    'CostReportError',
    'YearRangeError',
    'InvalidRangeFormat',
    'RangeOutOfBounds',
    'RangeInverted',
    'ConfigError',
    'SignInRequired',
    'ScopeError',
    'ScopeNotFound',
    'ScopeInactive',
    'NotAuthorized',
    'ScopeLookupFailed',
    'NoActiveScopes',
    'NoAuthorizedScopes',
    'AuthorizationCheckFailed',
    'DirectoryLookupError',
    'QueryError',
    'ApiError',
    'ResponseError',
    'EmptyResponse',
    'MissingColumns',
    'MalformedRow',
    'UnparseableDate',
    'UnparseableCost',
]
