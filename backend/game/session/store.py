"""
Session store adapter.

The store is the only place session state lives between commands. Every
write is a compare-and-swap on GameSession.version: a writer that loaded a
stale copy gets StaleSessionError instead of silently overwriting a
concurrent update. The store also keeps the connection-to-code bindings used
to resolve the session of a dropped transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from game.logic.exceptions import StaleSessionError
from game.logic.state import GameSession


class SessionStore(ABC):
    """Abstract key-value store for game sessions and connection bindings."""

    @abstractmethod
    async def get(self, code: str) -> GameSession | None:
        """Return the session stored under code, or None."""
        ...

    @abstractmethod
    async def put(self, session: GameSession, *, expected_version: int | None) -> GameSession:
        """
        Store session under session.code and return the stored value.

        expected_version=None requires that no session is stored under the
        code; otherwise the stored version must equal expected_version. The
        stored value carries version + 1 of the currently stored one.

        Raises:
            StaleSessionError: If the stored version does not match

        """
        ...

    @abstractmethod
    async def delete(self, code: str) -> bool:
        """Remove the session stored under code. Return True if one was removed."""
        ...

    @abstractmethod
    async def codes(self) -> list[str]:
        """Return the codes of all stored sessions."""
        ...

    @abstractmethod
    async def bind(self, connection_id: str, code: str) -> None:
        """Map a connection to a session code, replacing any earlier binding."""
        ...

    @abstractmethod
    async def lookup(self, connection_id: str) -> str | None:
        """Return the session code bound to connection_id, or None."""
        ...

    @abstractmethod
    async def unbind(self, connection_id: str) -> None:
        """Remove the binding of connection_id, if any."""
        ...


def next_version(session: GameSession, expected_version: int | None) -> GameSession:
    return session.model_copy(update={"version": (expected_version or 0) + 1})


class InMemorySessionStore(SessionStore):
    """
    Process-local store.

    Sessions are kept as JSON documents, so a loaded session never aliases
    the stored one and a session survives a serialization round trip exactly
    as it would in an external key-value store.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, str] = {}  # code -> session JSON
        self._versions: dict[str, int] = {}  # code -> stored version
        self._bindings: dict[str, str] = {}  # connection_id -> code

    async def get(self, code: str) -> GameSession | None:
        raw = self._sessions.get(code)
        if raw is None:
            return None
        return GameSession.model_validate_json(raw)

    async def put(self, session: GameSession, *, expected_version: int | None) -> GameSession:
        actual = self._versions.get(session.code)
        if actual != expected_version:
            raise StaleSessionError(session.code, expected_version, actual)
        stored = next_version(session, expected_version)
        self._sessions[stored.code] = stored.model_dump_json()
        self._versions[stored.code] = stored.version
        return stored

    async def delete(self, code: str) -> bool:
        self._versions.pop(code, None)
        removed = self._sessions.pop(code, None) is not None
        if removed:
            self._bindings = {cid: bound for cid, bound in self._bindings.items() if bound != code}
        return removed

    async def codes(self) -> list[str]:
        return list(self._sessions)

    async def bind(self, connection_id: str, code: str) -> None:
        self._bindings[connection_id] = code

    async def lookup(self, connection_id: str) -> str | None:
        return self._bindings.get(connection_id)

    async def unbind(self, connection_id: str) -> None:
        self._bindings.pop(connection_id, None)
