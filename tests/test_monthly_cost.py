"""
Tests for the monthly_cost.py command line entry point.

Covers:
- Exit codes (success, invalid input, failure, interrupted)
- Config and Azure SDK failures reported without tracebacks
- Early exits for future ranges before any sign-in
- Session start (saved sessions, interactive fallback, forced re-auth)
- Table output, sorting, clipboard export and report files
"""
import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from azure.core.exceptions import HttpResponseError, ServiceRequestError

import monthly_cost
from costlib.errors import ApiError, ConfigError, ScopeNotFound, SignInRequired
from costlib.models import BillingScope, MonthTotal, Principal, SavedSession

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
SUB_ID = "11111111-2222-3333-4444-555555555555"
USER = Principal(id="alice@contoso.com", kind="user")


def total(cost, currency="USD"):
    month_total = MonthTotal()
    month_total.add(Decimal(cost), currency)
    return month_total


@pytest.fixture
def env():
    """Patch every collaborator main() reaches over the network."""
    with patch('monthly_cost.utc_now', return_value=NOW), \
            patch('monthly_cost.load_config'), \
            patch('monthly_cost.setup_logging'), \
            patch('monthly_cost.SessionProvider') as sessions_cls, \
            patch('monthly_cost.ScopeDirectory') as directory_cls, \
            patch('monthly_cost.RoleAssignmentLookup') as lookup_cls, \
            patch('monthly_cost.RetryingQueryClient') as client_cls:
        sessions = sessions_cls.return_value
        sessions.list_sessions.return_value = []
        sessions.get_active_principal.return_value = USER

        directory = directory_cls.return_value
        directory.get_scope.return_value = BillingScope(id=SUB_ID, display_name="Prod", state="Enabled")
        directory.list_scopes.return_value = [BillingScope(id=SUB_ID, display_name="Prod", state="Enabled")]

        lookup = lookup_cls.return_value
        lookup.find.return_value = [Mock()]

        client = client_cls.return_value
        client.query_year.return_value = {
            "2025-01": total("100.00"),
            "2025-03": total("50.25"),
        }

        yield Mock(sessions_cls=sessions_cls, sessions=sessions, directory=directory,
                   lookup=lookup, client=client)


# =============================================================================
# Input Validation / Early Exit Tests
# =============================================================================

class TestEarlyExit:
    """Tests for exits that happen before any Azure call."""

    @pytest.mark.parametrize("years", ["abc", "2025:2024", "1999", "2024-2025"])
    def test_invalid_range(self, env, years):
        assert monthly_cost.main(['--years', years]) == monthly_cost.EXIT_INVALID_INPUT
        env.sessions_cls.assert_not_called()

    def test_invalid_sort_from_config(self, env):
        with patch('monthly_cost.load_config', side_effect=lambda args: setattr(args, 'sort', 'sideways')):
            assert monthly_cost.main([]) == monthly_cost.EXIT_INVALID_INPUT

    def test_config_error(self, env):
        with patch('monthly_cost.load_config', side_effect=ConfigError("Config file not found: missing.yaml")):
            assert monthly_cost.main(['--config', 'missing.yaml']) == monthly_cost.EXIT_INVALID_INPUT

        env.sessions_cls.assert_not_called()

    def test_fully_future(self, env, capsys):
        assert monthly_cost.main(['--years', '2026:2027']) == monthly_cost.EXIT_OK

        assert "entirely in the future" in capsys.readouterr().out
        env.sessions_cls.assert_not_called()
        env.client.query_year.assert_not_called()

    def test_generate_config(self, capsys):
        assert monthly_cost.main(['--generate-config']) == monthly_cost.EXIT_OK
        assert "Monthly Cost Report Configuration" in capsys.readouterr().out


# =============================================================================
# Session Tests
# =============================================================================

class TestStartSession:
    """Tests for session selection."""

    def test_interactive_fallback(self, env):
        env.sessions.get_active_principal.side_effect = [SignInRequired("none"), USER]

        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_OK
        env.sessions.sign_in_interactive.assert_called_once_with()

    def test_force_reauth(self, env):
        assert monthly_cost.main(['--subscription-id', SUB_ID, '--force-reauth']) == monthly_cost.EXIT_OK
        env.sessions.sign_in_interactive.assert_called_once_with()

    def test_saved_session_for_tenant(self, env):
        other = SavedSession(subscription_id="s1", tenant_id="t-other", is_default=True)
        match = SavedSession(subscription_id="s2", tenant_id="t-1")
        default_match = SavedSession(subscription_id="s3", tenant_id="t-1", is_default=True)
        env.sessions.list_sessions.return_value = [other, match, default_match]

        monthly_cost.main(['--subscription-id', SUB_ID, '--tenant-id', 't-1'])

        env.sessions_cls.assert_called_once_with(tenant_id='t-1')
        env.sessions.set_active_session.assert_called_once_with(default_match)

    def test_sign_in_failure(self, env):
        env.sessions.get_active_principal.side_effect = SignInRequired("none")
        env.sessions.sign_in_interactive.side_effect = SignInRequired("cancelled")

        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_FAILURE


# =============================================================================
# Run Tests
# =============================================================================

class TestRun:
    """Tests for complete runs."""

    def test_success_prints_table(self, env, capsys):
        assert monthly_cost.main(['--years', '2025', '--subscription-id', SUB_ID]) == monthly_cost.EXIT_OK

        out = capsys.readouterr().out
        assert "2025-06" in out
        assert "100.00" in out
        assert "150.25" in out
        env.client.query_year.assert_called_once()
        assert env.client.query_year.call_args.args[0] == SUB_ID

    def test_default_year_is_current(self, env):
        monthly_cost.main(['--subscription-id', SUB_ID])

        start = env.client.query_year.call_args.args[1]
        assert start.year == 2025

    def test_descending(self, env, capsys):
        monthly_cost.main(['--years', '2025', '--sort', 'desc', '--subscription-id', SUB_ID])

        out = capsys.readouterr().out
        assert out.index("2025-06") < out.index("2025-01")

    def test_interactive_scope(self, env):
        assert monthly_cost.main(['--years', '2025']) == monthly_cost.EXIT_OK
        env.directory.list_scopes.assert_called_once()
        env.directory.get_scope.assert_not_called()

    def test_not_authorized(self, env):
        env.lookup.find.return_value = []

        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_FAILURE
        env.client.query_year.assert_not_called()

    def test_scope_not_found(self, env):
        env.directory.get_scope.side_effect = ScopeNotFound(SUB_ID)
        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_FAILURE

    def test_query_failure(self, env):
        env.client.query_year.side_effect = ApiError(403, "AuthorizationFailed: no access")
        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_FAILURE

    def test_subscription_listing_failure(self, env):
        env.directory.list_scopes.side_effect = HttpResponseError(message="Internal error")

        assert monthly_cost.main([]) == monthly_cost.EXIT_FAILURE
        env.client.query_year.assert_not_called()

    def test_connection_failure(self, env):
        env.client.query_year.side_effect = ServiceRequestError("Connection reset by peer")
        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_FAILURE

    def test_no_activity(self, env, capsys):
        env.client.query_year.return_value = {}

        assert monthly_cost.main(['--years', '2025', '--subscription-id', SUB_ID]) == monthly_cost.EXIT_OK

        assert "No cost recorded for Prod" in capsys.readouterr().out

    def test_interrupted(self, env):
        env.sessions.get_active_principal.side_effect = KeyboardInterrupt()
        assert monthly_cost.main(['--subscription-id', SUB_ID]) == monthly_cost.EXIT_INTERRUPTED


class TestOutputs:
    """Tests for clipboard export and report files."""

    def test_export(self, env):
        with patch('monthly_cost.copy_to_clipboard', return_value=True) as mock_copy:
            monthly_cost.main(['--years', '2025', '--subscription-id', SUB_ID, '--export', '--show-currency'])

        text = mock_copy.call_args.args[0]
        assert text.splitlines()[0] == "Month\tCost\tCurrency"
        assert "2025-01\t100.00\tUSD" in text

    def test_export_without_clipboard_still_succeeds(self, env):
        with patch('monthly_cost.copy_to_clipboard', return_value=False):
            assert monthly_cost.main(['--subscription-id', SUB_ID, '--export']) == monthly_cost.EXIT_OK

    def test_output_files(self, env, tmp_path):
        monthly_cost.main(['--years', '2025', '--subscription-id', SUB_ID, '-o', str(tmp_path)])

        json_files = list(tmp_path.glob("monthly_cost_*.json"))
        csv_files = list(tmp_path.glob("monthly_cost_*.csv"))
        assert len(json_files) == 1
        assert len(csv_files) == 1

        data = json.loads(json_files[0].read_text())
        assert data['total_cost'] == "150.25"
        assert data['period'] == "2025-01 to 2025-06"
        assert len(data['rows']) == 6
        assert 'run_id' in data
