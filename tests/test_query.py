"""
Tests for the Cost Management query client.

Covers:
- Query definition shape (ActualCost, Custom timeframe, daily granularity)
- Error message extraction from provider bodies
- HttpResponseError and transport error conversion
- RetryingQueryClient retry behavior and normalization
"""
import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from azure.core.exceptions import HttpResponseError, ServiceRequestError

from costlib.errors import ApiError, MissingColumns
from costlib.query import (
    RetryingQueryClient,
    api_error_from_response_error,
    build_query,
    extract_error_message,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc)

SUB_ID = "11111111-2222-3333-4444-555555555555"


def usage_body(rows):
    return {'properties': {
        'columns': [{'name': 'PreTaxCost'}, {'name': 'UsageDate'}, {'name': 'Currency'}],
        'rows': rows,
    }}


def make_client(usage):
    """RetryingQueryClient over a fake SDK client whose query.usage is `usage`."""
    sdk = Mock()
    sdk.query.usage = usage
    factory = Mock(return_value=sdk)
    sleep = Mock()
    client = RetryingQueryClient(Mock(), sleep=sleep, client_factory=factory)
    return client, factory, sleep


# =============================================================================
# build_query Tests
# =============================================================================

class TestBuildQuery:
    """Tests for build_query."""

    def test_query_shape(self):
        query = build_query(START, END)

        assert query.type == "ActualCost"
        assert query.timeframe == "Custom"
        assert query.time_period.from_property == START
        assert query.time_period.to == END
        assert query.dataset.granularity == "Daily"
        assert query.dataset.aggregation["totalCost"].name == "PreTaxCost"
        assert query.dataset.aggregation["totalCost"].function == "Sum"


# =============================================================================
# Error Message Tests
# =============================================================================

class TestExtractErrorMessage:
    """Tests for extract_error_message."""

    def test_code_and_message(self):
        body = {'error': {'code': 'BadRequest', 'message': 'Invalid dataset'}}
        assert extract_error_message(body, 400) == "BadRequest: Invalid dataset"

    def test_code_only(self):
        assert extract_error_message({'error': {'code': 'Throttled'}}, 429) == "Throttled"

    def test_message_only(self):
        assert extract_error_message({'error': {'message': 'Try later'}}, 503) == "Try later"

    def test_no_error_object(self):
        assert extract_error_message({'other': 1}, 500) == "Unknown error (HTTP 500)"

    def test_not_a_dict(self):
        assert extract_error_message("oops") == "Unknown error"


class TestApiErrorConversion:
    """Tests for api_error_from_response_error."""

    def test_odata_error(self):
        exc = Mock(status_code=400, message="raw")
        exc.error = Mock(code="BadRequest", message="Invalid query")

        error = api_error_from_response_error(exc)

        assert error.status == 400
        assert error.message == "BadRequest: Invalid query"
        assert str(error) == "HTTP 400: BadRequest: Invalid query"

    def test_json_body(self):
        exc = Mock(status_code=429, error=None, message="raw")
        exc.response.text.return_value = json.dumps({'error': {'code': '429', 'message': 'Too many requests'}})

        error = api_error_from_response_error(exc)

        assert error.status == 429
        assert error.message == "429: Too many requests"

    def test_unparseable_body_uses_sdk_message(self):
        exc = Mock(status_code=502, error=None, message="Bad Gateway")
        exc.response.text.return_value = "<html>gateway</html>"

        error = api_error_from_response_error(exc)

        assert error.status == 502
        assert error.message == "Bad Gateway"


# =============================================================================
# RetryingQueryClient Tests
# =============================================================================

class TestRetryingQueryClient:
    """Tests for RetryingQueryClient.query_year."""

    def test_success_normalizes(self):
        usage = Mock(return_value=usage_body([
            [1.25, 20240105, "USD"],
            [2.75, 20240220, "USD"],
        ]))
        client, factory, sleep = make_client(usage)

        totals = client.query_year(SUB_ID, START, END)

        assert totals["2024-01"].cost == Decimal("1.25")
        assert totals["2024-02"].cost == Decimal("2.75")
        factory.assert_called_once()
        assert factory.call_args.args[1] == SUB_ID
        assert usage.call_args.kwargs['scope'] == f"/subscriptions/{SUB_ID}"
        assert usage.call_args.kwargs['parameters'].time_period.from_property == START
        sleep.assert_not_called()

    def test_throttled_twice_then_success(self):
        usage = Mock(side_effect=[
            ApiError(429, "Too many requests"),
            ApiError(429, "Too many requests"),
            usage_body([[5, 20240301, "USD"]]),
        ])
        client, _, sleep = make_client(usage)

        totals = client.query_year(SUB_ID, START, END)

        assert totals["2024-03"].cost == Decimal("5")
        assert usage.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [10, 10]

    def test_persistent_server_error(self):
        usage = Mock(side_effect=ApiError(503, "Service unavailable"))
        client, _, sleep = make_client(usage)

        with pytest.raises(ApiError) as exc_info:
            client.query_year(SUB_ID, START, END)

        assert exc_info.value.status == 503
        assert usage.call_count == 6
        assert [c.args[0] for c in sleep.call_args_list] == [2, 4, 8, 16, 32]

    def test_client_error_not_retried(self):
        usage = Mock(side_effect=ApiError(400, "BadRequest: Invalid"))
        client, _, sleep = make_client(usage)

        with pytest.raises(ApiError):
            client.query_year(SUB_ID, START, END)

        assert usage.call_count == 1
        sleep.assert_not_called()

    def test_sdk_error_converted(self):
        usage = Mock(side_effect=HttpResponseError(message="boom"))
        client, _, _ = make_client(usage)

        with pytest.raises(ApiError) as exc_info:
            client.query_year(SUB_ID, START, END)

        assert exc_info.value.message == "boom"
        assert usage.call_count == 1

    def test_transport_error_converted(self):
        usage = Mock(side_effect=ServiceRequestError("Connection reset by peer"))
        client, _, sleep = make_client(usage)

        with pytest.raises(ApiError) as exc_info:
            client.query_year(SUB_ID, START, END)

        assert exc_info.value.status is None
        assert "Connection reset by peer" in exc_info.value.message
        assert usage.call_count == 1
        sleep.assert_not_called()

    def test_bad_response_shape_not_retried(self):
        usage = Mock(return_value={'properties': {'columns': [{'name': 'Foo'}], 'rows': []}})
        client, _, sleep = make_client(usage)

        with pytest.raises(MissingColumns):
            client.query_year(SUB_ID, START, END)

        assert usage.call_count == 1
        sleep.assert_not_called()
