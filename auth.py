import logging
import requests
from typing import Optional

from client import BackendClient, client_from_settings
from errors import AuthenticationRequired

logger = logging.getLogger(__name__)


class AuthProvider:
    """Resolves the identifier of the signed-in user."""

    def current_user_id(self) -> Optional[str]:
        raise NotImplementedError()


class StaticAuth(AuthProvider):
    """Provider returning a fixed user id (local store, tests)."""

    def __init__(self, user_id: Optional[str]) -> None:
        self.user_id = user_id or None

    def current_user_id(self) -> Optional[str]:
        return self.user_id


class TokenAuth(AuthProvider):
    """Ask the backend which user the client's session token belongs to."""

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    def current_user_id(self) -> Optional[str]:
        try:
            return self.client.current_user()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Could not resolve current user: %s", e)
            return None


def require_user(provider: AuthProvider) -> str:
    user_id = provider.current_user_id()
    if not user_id:
        raise AuthenticationRequired()
    return user_id


def auth_from_settings(settings) -> AuthProvider:
    if settings.uses_remote_backend:
        return TokenAuth(client_from_settings(settings))
    return StaticAuth(settings.user_id)
