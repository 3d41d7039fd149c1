"""
Tests for the directory admin client.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.errors.exceptions import AuthError, DirectoryConflictError, DirectoryError, ServerError
from core.http.client import HttpResponse
from provisioning.directory import KeycloakDirectory

ADMIN_URL = "https://idp.example.org/admin/realms/schule/"
USERS_URL = "https://idp.example.org/admin/realms/schule/users"


def _response(status=200, payload=None, headers=None):
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return HttpResponse(status=status, body=body, headers=headers or {})


def _user(user_id="u-1", username="c.weber@schule.de"):
    return {"id": user_id, "username": username, "enabled": True}


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.authenticated_request = AsyncMock(return_value=_response(payload=[]))
    return mock


@pytest.fixture
def directory(transport):
    return KeycloakDirectory(transport, ADMIN_URL)


class TestUrls:

    def test_trailing_slash_removed(self, directory):
        assert directory.users_url == USERS_URL

    def test_user_id_quoted(self, directory):
        assert directory.user_url("a/b") == f"{USERS_URL}/a%2Fb"


class TestFindUsers:

    @pytest.mark.asyncio
    async def test_exact_username(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload=[_user()])

        users = await directory.find_users(username="c.weber@schule.de")

        assert [u.id for u in users] == ["u-1"]
        transport.authenticated_request.assert_awaited_once_with(
            "GET", USERS_URL, params={"username": "c.weber@schule.de", "exact": "true"}
        )

    @pytest.mark.asyncio
    async def test_search_is_not_exact(self, directory, transport):
        await directory.find_users(search="weber")

        transport.authenticated_request.assert_awaited_once_with("GET", USERS_URL, params={"search": "weber"})

    @pytest.mark.asyncio
    async def test_unexpected_body(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload={"error": "x"})

        with pytest.raises(DirectoryError, match="unexpected body"):
            await directory.find_users(username="x")

    @pytest.mark.asyncio
    async def test_non_json_body(self, directory, transport):
        transport.authenticated_request.return_value = HttpResponse(200, b"<html>proxy</html>")

        with pytest.raises(DirectoryError, match="non-JSON body"):
            await directory.find_users(username="x")

    @pytest.mark.asyncio
    async def test_malformed_user(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload=[{"username": "no-id"}])

        with pytest.raises(DirectoryError, match="malformed"):
            await directory.find_users(username="x")


class TestUserExists:

    @pytest.mark.asyncio
    async def test_found_by_username(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload=[_user()])

        assert await directory.user_exists("c.weber@schule.de", email="c.weber@schule.de")
        assert transport.authenticated_request.await_count == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_email(self, directory, transport):
        transport.authenticated_request.side_effect = [_response(payload=[]), _response(payload=[_user()])]

        assert await directory.user_exists("cweber", email="c.weber@schule.de")

        second = transport.authenticated_request.await_args_list[1]
        assert second.kwargs["params"] == {"email": "c.weber@schule.de", "exact": "true"}

    @pytest.mark.asyncio
    async def test_not_found(self, directory, transport):
        assert not await directory.user_exists("cweber", email="c.weber@schule.de")
        assert transport.authenticated_request.await_count == 2

    @pytest.mark.asyncio
    async def test_without_email_single_probe(self, directory, transport):
        assert not await directory.user_exists("cweber")
        assert transport.authenticated_request.await_count == 1


class TestListAndCount:

    @pytest.mark.asyncio
    async def test_list_users_paging(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload=[_user("u-1"), _user("u-2", "b")])

        users = await directory.list_users(first=10, max_results=2, search="b")

        assert len(users) == 2
        transport.authenticated_request.assert_awaited_once_with(
            "GET", USERS_URL, params={"first": "10", "max": "2", "search": "b"}
        )

    @pytest.mark.asyncio
    async def test_count(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload=42)

        assert await directory.count_users() == 42
        transport.authenticated_request.assert_awaited_once_with("GET", f"{USERS_URL}/count", params={})

    @pytest.mark.asyncio
    async def test_count_non_json(self, directory, transport):
        transport.authenticated_request.return_value = HttpResponse(200, b"<html></html>")

        with pytest.raises(DirectoryError, match="non-JSON body"):
            await directory.count_users()

    @pytest.mark.asyncio
    async def test_count_non_numeric(self, directory, transport):
        transport.authenticated_request.return_value = _response(payload="many")

        with pytest.raises(DirectoryError, match="non-numeric"):
            await directory.count_users()


class TestMutations:

    @pytest.mark.asyncio
    async def test_create_returns_location_id(self, directory, transport):
        transport.authenticated_request.return_value = _response(
            status=201, headers={"location": f"{USERS_URL}/new-id"}
        )

        user_id = await directory.create_user({"username": "x"})

        assert user_id == "new-id"
        transport.authenticated_request.assert_awaited_once_with("POST", USERS_URL, json={"username": "x"})

    @pytest.mark.asyncio
    async def test_create_without_location(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=201)
        assert await directory.create_user({"username": "x"}) is None

    @pytest.mark.asyncio
    async def test_create_conflict(self, directory, transport):
        transport.authenticated_request.return_value = _response(
            status=409, payload={"errorMessage": "User exists with same username"}
        )

        with pytest.raises(DirectoryConflictError) as exc_info:
            await directory.create_user({"username": "x"})

        assert exc_info.value.status == 409
        assert "same username" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_create_rejected(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=400, payload={"error": "bad"})

        with pytest.raises(DirectoryError, match="create_user failed: HTTP 400"):
            await directory.create_user({})

    @pytest.mark.asyncio
    async def test_unauthorized(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=401)

        with pytest.raises(AuthError):
            await directory.delete_user("u-1")

    @pytest.mark.asyncio
    async def test_server_error(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=503)

        with pytest.raises(ServerError):
            await directory.set_enabled("u-1", False)

    @pytest.mark.asyncio
    async def test_set_enabled(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=204)

        await directory.set_enabled("u-1", False)

        transport.authenticated_request.assert_awaited_once_with(
            "PUT", f"{USERS_URL}/u-1", json={"enabled": False}
        )

    @pytest.mark.asyncio
    async def test_delete(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=204)

        await directory.delete_user("u-1")

        transport.authenticated_request.assert_awaited_once_with("DELETE", f"{USERS_URL}/u-1")

    @pytest.mark.asyncio
    async def test_execute_actions_email(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=204)

        await directory.execute_actions_email("u-1", ("VERIFY_EMAIL",))

        transport.authenticated_request.assert_awaited_once_with(
            "PUT", f"{USERS_URL}/u-1/execute-actions-email", json=["VERIFY_EMAIL"]
        )

    @pytest.mark.asyncio
    async def test_send_verify_email(self, directory, transport):
        transport.authenticated_request.return_value = _response(status=204)

        await directory.send_verify_email("u-1")

        transport.authenticated_request.assert_awaited_once_with("PUT", f"{USERS_URL}/u-1/send-verify-email")
