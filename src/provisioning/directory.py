"""
Identity directory admin client.

Thin wrapper over the Keycloak admin REST API. Every call goes through an
AuthenticatedTransport (normally the AuthSession), which attaches the bearer
token and handles refresh. Non-2xx answers become typed errors.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from core.errors.classifiers import HttpErrorClassifier
from core.errors.exceptions import DirectoryError
from core.http.client import HttpResponse
from core.types import AuthenticatedTransport
from provisioning.models import DirectoryUser

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class KeycloakDirectory:
    """
    Admin API for one realm.

    Args:
        transport: Object issuing authenticated requests
        admin_url: ``{base}/admin/realms/{realm}``
    """

    def __init__(self, transport: AuthenticatedTransport, admin_url: str):
        self._transport = transport
        self.admin_url = admin_url.rstrip("/")

    @property
    def users_url(self) -> str:
        return f"{self.admin_url}/users"

    def user_url(self, user_id: str) -> str:
        return f"{self.users_url}/{quote(user_id, safe='')}"

    async def _call(self, method: str, url: str, operation: str, **kwargs: Any) -> HttpResponse:
        response = await self._transport.authenticated_request(method, url, **kwargs)
        if not response.ok:
            body = response.text()
            logger.debug(
                "Directory call failed",
                extra={"operation": operation, "http_status": response.status, "http_method": method},
            )
            raise HttpErrorClassifier.error_for_response(response.status, body, operation)
        return response

    @staticmethod
    def _json(response: HttpResponse, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DirectoryError(f"{operation} returned a non-JSON body", status=response.status, cause=e) from e

    @classmethod
    def _users(cls, response: HttpResponse, operation: str) -> List[DirectoryUser]:
        payload = cls._json(response, operation) or []
        if not isinstance(payload, list):
            raise DirectoryError(f"{operation} returned an unexpected body", status=response.status)
        try:
            return [DirectoryUser.model_validate(item) for item in payload]
        except PydanticValidationError as e:
            raise DirectoryError(f"{operation} returned malformed users", cause=e) from e

    async def find_users(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
        search: Optional[str] = None,
        exact: bool = True,
    ) -> List[DirectoryUser]:
        params: Dict[str, str] = {}
        if username:
            params["username"] = username
        if email:
            params["email"] = email
        if search:
            params["search"] = search
        if (username or email) and exact:
            params["exact"] = "true"

        response = await self._call("GET", self.users_url, "find_users", params=params)
        return self._users(response, "find_users")

    async def user_exists(self, username: str, email: Optional[str] = None) -> bool:
        """Existence check by username, then by email."""
        if await self.find_users(username=username, exact=True):
            return True
        if email and await self.find_users(email=email, exact=True):
            return True
        return False

    async def list_users(
        self, first: int = 0, max_results: int = DEFAULT_PAGE_SIZE, search: Optional[str] = None
    ) -> List[DirectoryUser]:
        params = {"first": str(first), "max": str(max_results)}
        if search:
            params["search"] = search
        response = await self._call("GET", self.users_url, "list_users", params=params)
        return self._users(response, "list_users")

    async def count_users(self, search: Optional[str] = None) -> int:
        params = {"search": search} if search else {}
        response = await self._call("GET", f"{self.users_url}/count", "count_users", params=params)
        try:
            return int(self._json(response, "count_users") or 0)
        except (TypeError, ValueError) as e:
            raise DirectoryError("count_users returned a non-numeric body", cause=e) from e

    async def create_user(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Create a user.

        Returns:
            The new user's id taken from the Location header, if present

        Raises:
            DirectoryConflictError: User already exists (409)
            DirectoryError: Any other rejection
        """
        response = await self._call("POST", self.users_url, "create_user", json=payload)
        location = response.header("Location")
        if location:
            return location.rstrip("/").rsplit("/", 1)[-1]
        return None

    async def set_enabled(self, user_id: str, enabled: bool) -> None:
        await self._call("PUT", self.user_url(user_id), "set_enabled", json={"enabled": enabled})

    async def delete_user(self, user_id: str) -> None:
        await self._call("DELETE", self.user_url(user_id), "delete_user")

    async def send_verify_email(self, user_id: str) -> None:
        await self._call("PUT", f"{self.user_url(user_id)}/send-verify-email", "send_verify_email")

    async def execute_actions_email(self, user_id: str, actions: List[str]) -> None:
        await self._call(
            "PUT",
            f"{self.user_url(user_id)}/execute-actions-email",
            "execute_actions_email",
            json=list(actions),
        )


__all__ = ["DEFAULT_PAGE_SIZE", "KeycloakDirectory"]
