"""
Owner-role authorization checks.

The role-assignment lookup needs the principal's directory object id. For
users and service principals that id comes from Microsoft Graph, which an ARM
token alone cannot always read. When the lookup fails for that reason the
resolver signs in again once with the Graph scope and retries; ReauthLatch
records that this has happened so it is never repeated within a run.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests
from azure.mgmt.authorization import AuthorizationManagementClient

from .constants import (
    GRAPH_BASE_URL,
    GRAPH_SCOPE,
    GRAPH_SCOPE_ERROR_PATTERNS,
    GRAPH_TIMEOUT_SECONDS,
    GUID_PATTERN,
    PRINCIPAL_OBJECT,
    PRINCIPAL_SERVICE,
    PRINCIPAL_USER,
    REQUIRED_ROLE_NAME,
)
from .errors import AuthorizationCheckFailed, DirectoryLookupError
from .models import Principal

logger = logging.getLogger(__name__)


@dataclass
class ReauthLatch:
    """One-shot re-authentication state, owned by a single run."""
    attempted: bool = False


def principal_kind(principal: Principal) -> str:
    """Lookup kind for a principal; bare GUIDs are treated as object ids."""
    if principal.kind in (PRINCIPAL_USER, PRINCIPAL_SERVICE, PRINCIPAL_OBJECT):
        return principal.kind
    if re.match(GUID_PATTERN, principal.id or ''):
        return PRINCIPAL_OBJECT
    return PRINCIPAL_USER


def is_graph_scope_error(exc: BaseException) -> bool:
    """True if the failure means the token cannot query the directory."""
    if isinstance(exc, DirectoryLookupError) and exc.status in (401, 403):
        return True
    message = str(exc).lower()
    return any(pattern in message for pattern in GRAPH_SCOPE_ERROR_PATTERNS)


def _role_guid(role_definition_id: Optional[str]) -> str:
    return (role_definition_id or '').rstrip('/').split('/')[-1].lower()


class RoleAssignmentLookup:
    """Finds role assignments of a principal on a subscription."""

    def __init__(self, sessions, http: Optional[requests.Session] = None):
        self.sessions = sessions
        self.http = http or requests.Session()

    def _graph_get(self, path: str, params: Optional[dict] = None) -> dict:
        token = self.sessions.credential.get_token(GRAPH_SCOPE)
        response = self.http.get(
            f"{GRAPH_BASE_URL}{path}",
            headers={'Authorization': f"Bearer {token.token}"},
            params=params,
            timeout=GRAPH_TIMEOUT_SECONDS,
        )
        if response.status_code >= 400:
            raise DirectoryLookupError(
                f"Microsoft Graph lookup failed (HTTP {response.status_code}): {response.text}",
                status=response.status_code,
            )
        return response.json()

    def resolve_object_id(self, principal: Principal) -> str:
        kind = principal_kind(principal)
        if kind == PRINCIPAL_OBJECT:
            return principal.id

        if kind == PRINCIPAL_SERVICE:
            data = self._graph_get(
                "/servicePrincipals",
                params={'$filter': f"appId eq '{principal.id}'", '$select': 'id'},
            )
            matches = data.get('value') or []
            if not matches:
                raise DirectoryLookupError(f"Service principal {principal.id} not found in directory")
            return matches[0]['id']

        data = self._graph_get(f"/users/{principal.id}", params={'$select': 'id'})
        return data['id']

    def find(self, scope_id: str, principal: Principal, role_name: str = REQUIRED_ROLE_NAME) -> List:
        """Assignments of role_name held by principal at the subscription scope."""
        object_id = self.resolve_object_id(principal)
        scope = f"/subscriptions/{scope_id}"
        client = AuthorizationManagementClient(self.sessions.credential, scope_id)

        role_ids = {
            _role_guid(definition.id)
            for definition in client.role_definitions.list(scope, filter=f"roleName eq '{role_name}'")
        }
        if not role_ids:
            logger.debug(f"No role definition named {role_name} at {scope}")
            return []

        return [
            assignment
            for assignment in client.role_assignments.list_for_scope(
                scope, filter=f"assignedTo('{object_id}')"
            )
            if _role_guid(assignment.role_definition_id) in role_ids
        ]


class AuthorizationResolver:
    """
    Decides whether a principal holds the required role on a subscription.

    Usage:
        resolver = AuthorizationResolver(sessions, RoleAssignmentLookup(sessions), ReauthLatch())
        if resolver.is_authorized(subscription_id, principal): ...
    """

    def __init__(self, sessions, lookup, latch: ReauthLatch, role_name: str = REQUIRED_ROLE_NAME):
        self.sessions = sessions
        self.lookup = lookup
        self.latch = latch
        self.role_name = role_name

    def is_authorized(self, scope_id: str, principal: Principal) -> bool:
        """
        Raises:
            AuthorizationCheckFailed: lookup failed and re-authentication
                                      was not possible or did not help
        """
        try:
            assignments = self.lookup.find(scope_id, principal, self.role_name)
        except Exception as e:
            if not is_graph_scope_error(e):
                raise AuthorizationCheckFailed(scope_id, str(e), original_error=e) from e

            if self.latch.attempted:
                raise AuthorizationCheckFailed(
                    scope_id, f"directory access still denied after re-authentication: {e}", original_error=e
                ) from e

            self.latch.attempted = True
            logger.warning("Role check needs directory (Microsoft Graph) access; signing in again with that scope")
            try:
                self.sessions.sign_in_interactive(extra_scope=GRAPH_SCOPE)
                refreshed = self.sessions.get_active_principal()
            except Exception as reauth_error:
                raise AuthorizationCheckFailed(
                    scope_id, f"re-authentication failed: {reauth_error}", original_error=reauth_error
                ) from reauth_error
            return self.is_authorized(scope_id, refreshed)

        authorized = bool(assignments)
        logger.debug(f"{principal.id} {'holds' if authorized else 'lacks'} {self.role_name} on {scope_id}")
        return authorized
