"""
Cost Management query client.

Issues one ActualCost query per calendar year and normalizes the response into
monthly totals. Throttling and server errors are retried under RetryPolicy;
response shape errors are not.
"""
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from azure.core.exceptions import AzureError, HttpResponseError
from azure.mgmt.costmanagement import CostManagementClient
from azure.mgmt.costmanagement.models import (
    QueryAggregation,
    QueryDataset,
    QueryDefinition,
    QueryTimePeriod,
)

from .errors import ApiError
from .models import MonthTotal
from .normalize import normalize
from .retry import RetryPolicy, attempt_with_retry

logger = logging.getLogger(__name__)


def build_query(from_utc: datetime, to_utc: datetime) -> QueryDefinition:
    """Actual cost, daily granularity, summed pre-tax cost."""
    return QueryDefinition(
        type="ActualCost",
        timeframe="Custom",
        time_period=QueryTimePeriod(
            from_property=from_utc,
            to=to_utc
        ),
        dataset=QueryDataset(
            granularity="Daily",
            aggregation={
                "totalCost": QueryAggregation(name="PreTaxCost", function="Sum")
            }
        )
    )


def extract_error_message(body: Any, status: Optional[int] = None) -> str:
    """
    Human-readable message from a provider error body.

    {"error": {"code": "X", "message": "Y"}} -> "X: Y"; whichever of code or
    message is present otherwise; a generic fallback if neither is.
    """
    error = body.get('error') if isinstance(body, Mapping) else None
    if isinstance(error, Mapping):
        code = error.get('code')
        message = error.get('message')
        if code and message:
            return f"{code}: {message}"
        if code or message:
            return str(code or message)
    return f"Unknown error (HTTP {status})" if status is not None else "Unknown error"


def api_error_from_response_error(exc: HttpResponseError) -> ApiError:
    """Convert an SDK HttpResponseError into ApiError(status, message)."""
    status = exc.status_code
    body: Any = None

    odata = getattr(exc, 'error', None)
    if odata is not None and (getattr(odata, 'code', None) or getattr(odata, 'message', None)):
        body = {'error': {'code': odata.code, 'message': odata.message}}
    elif exc.response is not None:
        try:
            body = json.loads(exc.response.text())
        except (ValueError, TypeError):
            body = None

    message = extract_error_message(body, status)
    if body is None and exc.message:
        message = exc.message
    return ApiError(status, message)


def default_client_factory(credential, subscription_id: str) -> CostManagementClient:
    # retry_total=0 disables the SDK's own retry policy; RetryPolicy is the only retry layer
    return CostManagementClient(credential, retry_total=0)


class RetryingQueryClient:
    """
    Queries one subscription's costs a year at a time.

    Usage:
        client = RetryingQueryClient(credential)
        totals = client.query_year(subscription_id, start, end)
    """

    def __init__(
        self,
        credential,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        client_factory: Callable[[Any, str], Any] = default_client_factory,
    ):
        self.credential = credential
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.client_factory = client_factory

    def _send(self, client, scope: str, query: QueryDefinition):
        logger.debug(f"Cost query attempt for {scope}")
        try:
            return client.query.usage(scope=scope, parameters=query)
        except HttpResponseError as e:
            error = api_error_from_response_error(e)
            logger.debug(f"Cost query attempt failed: {error}")
            raise error from e
        except AzureError as e:
            # Transport failures (connection reset, timeout) carry no HTTP status
            logger.debug(f"Cost query attempt failed: {e}")
            raise ApiError(None, str(e)) from e

    def query_year(self, scope_id: str, from_utc: datetime, to_utc: datetime) -> Dict[str, MonthTotal]:
        """
        Query costs for [from_utc, to_utc] and return {YYYY-MM: MonthTotal}.

        Raises:
            ApiError: non-retryable HTTP failure, or retries exhausted
            EmptyResponse, MissingColumns, MalformedRow, UnparseableDate,
            UnparseableCost
        """
        client = self.client_factory(self.credential, scope_id)
        scope = f"/subscriptions/{scope_id}"
        query = build_query(from_utc, to_utc)

        logger.info(f"Querying costs {from_utc:%Y-%m-%d} to {to_utc:%Y-%m-%d}")
        result = attempt_with_retry(
            self._send, self.policy, client, scope, query, sleep=self.sleep
        )

        totals = normalize(result)
        logger.info(f"Received {len(totals)} month(s) of cost data for {from_utc.year}")
        return totals
