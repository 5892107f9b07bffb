"""
Azure sign-in and session handling.

Wraps azure-identity credentials and the Azure CLI profile so the rest of the
engine only sees a Principal and a credential.
"""
import base64
import json
import logging
import os
from typing import Any, Dict, List, Optional

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    AzureCliCredential,
    CredentialUnavailableError,
    DefaultAzureCredential,
    InteractiveBrowserCredential,
)

from .constants import (
    ARM_SCOPE,
    AZURE_PROFILE_PATH,
    PRINCIPAL_OBJECT,
    PRINCIPAL_SERVICE,
    PRINCIPAL_USER,
)
from .errors import SignInRequired
from .models import Principal, SavedSession

logger = logging.getLogger(__name__)


def decode_token_claims(token: str) -> Dict[str, Any]:
    """Decode the (unverified) claims segment of a JWT access token."""
    try:
        payload = token.split('.')[1]
        payload += '=' * (-len(payload) % 4)
        return json.loads(base64.urlsafe_b64decode(payload.encode()))
    except (IndexError, ValueError) as e:
        raise SignInRequired(f"Could not read access token claims: {e}") from e


def principal_from_claims(claims: Dict[str, Any]) -> Principal:
    """
    Build a Principal from token claims.

    User tokens carry a sign-in name (upn / unique_name / preferred_username);
    app-only tokens (idtyp=app, or no delegated scp claim) identify a service
    principal by appid; otherwise fall back to the directory object id.
    """
    for claim in ('upn', 'unique_name', 'preferred_username'):
        value = claims.get(claim)
        if value and '@' in str(value):
            return Principal(id=str(value), kind=PRINCIPAL_USER)

    if claims.get('appid') and (claims.get('idtyp') == 'app' or 'scp' not in claims):
        return Principal(id=str(claims['appid']), kind=PRINCIPAL_SERVICE)

    if claims.get('oid'):
        return Principal(id=str(claims['oid']), kind=PRINCIPAL_OBJECT)

    raise SignInRequired("Access token does not identify a principal")


class SessionProvider:
    """
    Active Azure session.

    The default credential is DefaultAzureCredential without the interactive
    browser step; sign_in_interactive() replaces it with an interactive
    credential for the rest of the run.
    """

    def __init__(self, tenant_id: Optional[str] = None, credential=None):
        self.tenant_id = tenant_id
        self._credential = credential

    @property
    def credential(self):
        if self._credential is None:
            self._credential = DefaultAzureCredential(exclude_interactive_browser_credential=True)
        return self._credential

    def get_active_principal(self) -> Principal:
        """Principal of the active credential."""
        try:
            token = self.credential.get_token(ARM_SCOPE)
        except (ClientAuthenticationError, CredentialUnavailableError) as e:
            raise SignInRequired(f"No active Azure sign-in: {e}") from e

        principal = principal_from_claims(decode_token_claims(token.token))
        logger.info(f"Signed in as {principal.id} ({principal.kind})")
        return principal

    def list_sessions(self, profile_path: str = AZURE_PROFILE_PATH) -> List[SavedSession]:
        """Subscription contexts saved by the Azure CLI."""
        path = os.path.expanduser(profile_path)
        if not os.path.exists(path):
            return []

        # azureProfile.json is written with a UTF-8 BOM
        with open(path, encoding='utf-8-sig') as f:
            profile = json.load(f)

        sessions = []
        for sub in profile.get('subscriptions', []):
            user = sub.get('user') or {}
            sessions.append(SavedSession(
                subscription_id=sub.get('id', ''),
                subscription_name=sub.get('name', ''),
                tenant_id=sub.get('tenantId'),
                user_name=user.get('name', ''),
                user_type=user.get('type', ''),
                is_default=bool(sub.get('isDefault')),
            ))
        return sessions

    def set_active_session(self, session: SavedSession) -> None:
        """Use the Azure CLI login of a saved session."""
        logger.info(f"Using saved session for {session.user_name or 'unknown user'} (tenant {session.tenant_id})")
        self.tenant_id = session.tenant_id
        self._credential = AzureCliCredential(tenant_id=session.tenant_id) if session.tenant_id else AzureCliCredential()

    def sign_in_interactive(self, extra_scope: Optional[str] = None) -> None:
        """
        Sign in through the browser and make that credential active.

        Args:
            extra_scope: Additional token scope to consent to up front
                         (e.g. Microsoft Graph for directory lookups)
        """
        logger.info("Starting interactive Azure sign-in...")
        kwargs = {'tenant_id': self.tenant_id} if self.tenant_id else {}
        credential = InteractiveBrowserCredential(**kwargs)
        try:
            credential.get_token(ARM_SCOPE)
            if extra_scope:
                credential.get_token(extra_scope)
        except (ClientAuthenticationError, CredentialUnavailableError) as e:
            raise SignInRequired(f"Interactive sign-in failed: {e}") from e
        self._credential = credential
