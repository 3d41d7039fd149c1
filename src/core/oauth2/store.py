"""Keyed storage for session artifacts."""

from typing import Protocol

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRY_KEY = "token_expiry"  # epoch milliseconds
CODE_KEY = "code"
STATE_KEY = "state"
RECEIVED_STATE_KEY = "received_state"
CODE_VERIFIER_KEY = "code_verifier"
TIMESTAMP_KEY = "timestamp"  # epoch milliseconds of login initiation

# Login handshake artifacts, cleared once an exchange settles
EPHEMERAL_KEYS = (
    CODE_KEY,
    STATE_KEY,
    RECEIVED_STATE_KEY,
    CODE_VERIFIER_KEY,
    TIMESTAMP_KEY,
)

ALL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY) + EPHEMERAL_KEYS


class SessionStore(Protocol):
    """String key/value storage backing an AuthSession."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """Process-local store. Contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


__all__ = [
    "ACCESS_TOKEN_KEY",
    "ALL_KEYS",
    "CODE_KEY",
    "CODE_VERIFIER_KEY",
    "EPHEMERAL_KEYS",
    "MemorySessionStore",
    "RECEIVED_STATE_KEY",
    "REFRESH_TOKEN_KEY",
    "STATE_KEY",
    "SessionStore",
    "TIMESTAMP_KEY",
    "TOKEN_EXPIRY_KEY",
]
