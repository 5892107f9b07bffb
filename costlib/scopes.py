"""
Subscription discovery and selection.
"""
import logging
from typing import Callable, List, Optional

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.subscription import SubscriptionClient

from .errors import (
    AuthorizationCheckFailed,
    NoActiveScopes,
    NoAuthorizedScopes,
    NotAuthorized,
    ScopeInactive,
    ScopeLookupFailed,
    ScopeNotFound,
)
from .models import BillingScope, Principal

logger = logging.getLogger(__name__)


def _state_name(state) -> str:
    return str(getattr(state, 'value', state) or '')


def _to_scope(sub) -> BillingScope:
    return BillingScope(
        id=sub.subscription_id,
        display_name=sub.display_name or '',
        tenant_id=getattr(sub, 'tenant_id', None),
        state=_state_name(sub.state),
    )


class ScopeDirectory:
    """Subscriptions visible to the active credential."""

    def __init__(self, sessions, client_factory: Callable = SubscriptionClient):
        self.sessions = sessions
        self.client_factory = client_factory

    def _client(self):
        return self.client_factory(self.sessions.credential)

    def list_scopes(self) -> List[BillingScope]:
        try:
            scopes = [_to_scope(sub) for sub in self._client().subscriptions.list()]
        except AzureError as e:
            raise ScopeLookupFailed(str(e)) from e
        logger.info(f"Found {len(scopes)} subscription(s)")
        return scopes

    def get_scope(self, scope_id: str) -> BillingScope:
        try:
            sub = self._client().subscriptions.get(scope_id)
        except ResourceNotFoundError as e:
            raise ScopeNotFound(scope_id) from e
        except HttpResponseError as e:
            if e.status_code in (400, 403, 404):
                raise ScopeNotFound(scope_id, e.message or '') from e
            raise ScopeLookupFailed(str(e)) from e
        except AzureError as e:
            raise ScopeLookupFailed(str(e)) from e
        if sub is None:
            raise ScopeNotFound(scope_id)
        return _to_scope(sub)


# =============================================================================
# Candidate Selection
# =============================================================================

def prompt_for_scope(candidates: List[BillingScope]) -> str:
    """Print the numbered candidates and read a choice from the console."""
    print("\nSubscriptions you can report on:\n")
    for i, scope in enumerate(candidates, 1):
        print(f"  {i}) {scope.display_name} ({scope.id})")
    print()
    return input(f"Select a subscription (1-{len(candidates)}): ")


def choose_scope(candidates: List[BillingScope], ask: Callable[[List[BillingScope]], str]) -> int:
    """
    Index of the chosen candidate.

    A single candidate is chosen without asking. Otherwise ask() is called
    until it returns a valid 1-based number.
    """
    if not candidates:
        raise ValueError("No candidates to choose from")
    if len(candidates) == 1:
        return 0

    while True:
        answer = (ask(candidates) or '').strip()
        if answer.isdigit() and 1 <= int(answer) <= len(candidates):
            return int(answer) - 1
        print(f"Invalid choice. Please enter a number between 1 and {len(candidates)}.")


class ScopeSelector:
    """Resolves the one subscription a run reports on."""

    def __init__(self, directory: ScopeDirectory, authorizer, ask: Optional[Callable] = None):
        self.directory = directory
        self.authorizer = authorizer
        self.ask = ask or prompt_for_scope

    def resolve_direct(self, scope_id: str, principal: Principal) -> BillingScope:
        scope = self.directory.get_scope(scope_id)

        if not scope.is_active:
            raise ScopeInactive(scope.id, scope.state)

        if not self.authorizer.is_authorized(scope.id, principal):
            raise NotAuthorized(scope.id, principal.id, self.authorizer.role_name)

        logger.info(f"Using subscription {scope.display_name} ({scope.id})")
        return scope

    def resolve_interactive(self, principal: Principal) -> BillingScope:
        active = [s for s in self.directory.list_scopes() if s.is_active]
        if not active:
            raise NoActiveScopes()

        candidates = []
        for scope in active:
            try:
                if self.authorizer.is_authorized(scope.id, principal):
                    candidates.append(scope)
            except AuthorizationCheckFailed as e:
                logger.warning(f"Skipping subscription {scope.display_name} ({scope.id}): {e}")

        if not candidates:
            raise NoAuthorizedScopes(self.authorizer.role_name)

        scope = candidates[choose_scope(candidates, self.ask)]
        logger.info(f"Using subscription {scope.display_name} ({scope.id})")
        return scope
