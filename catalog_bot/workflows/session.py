# catalog_bot/workflows/session.py

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal

CONTEXT_LOST_MESSAGE = "❓ This operation has expired. Please start over."

CreatedKind = Literal["series", "season"]


@dataclass(frozen=True)
class CreatedEntity:
    """A record persisted mid-flow that must be removed if the flow does not finish."""

    kind: CreatedKind
    series_id: str
    season_number: int | None = None


@dataclass
class ConversationState:
    """The single in-progress flow of one user. Never persisted."""

    flow: str
    step: str
    user_id: int
    chat_id: int
    data: dict[str, Any] = field(default_factory=dict)
    created: list[CreatedEntity] = field(default_factory=list)
    cancelled: bool = False

    def track_series(self, series_id: str) -> None:
        self.created.append(CreatedEntity("series", series_id))

    def track_season(self, series_id: str, number: int) -> None:
        self.created.append(CreatedEntity("season", series_id, number))

    def mark_commit_point(self) -> None:
        """Everything created so far is kept even if the flow ends early."""
        self.created.clear()


class ConversationStore:
    """
    Per-user single-slot storage for conversation state.

    Callers hold `locked(user_id)` around every read-modify-write of a user's
    state; `pop` is the one operation allowed without the lock. A user's lock is
    dropped once nobody holds or waits for it and the user has no state.
    """

    def __init__(self) -> None:
        self._states: dict[int, ConversationState] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        # Tasks holding or waiting for each lock
        self._lock_users: dict[int, int] = {}

    @asynccontextmanager
    async def locked(self, user_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            self._prune_lock(user_id)

    def _prune_lock(self, user_id: int) -> None:
        if user_id in self._states or self._lock_users.get(user_id, 0):
            return
        self._lock_users.pop(user_id, None)
        self._locks.pop(user_id, None)

    def is_locked(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    def lock_count(self) -> int:
        return len(self._locks)

    def get(self, user_id: int) -> ConversationState | None:
        return self._states.get(user_id)

    def put(self, state: ConversationState) -> None:
        self._states[state.user_id] = state

    def pop(self, user_id: int) -> ConversationState | None:
        state = self._states.pop(user_id, None)
        self._prune_lock(user_id)
        return state

    def discard(self, state: ConversationState) -> None:
        """Removes `state` only if it is still the user's active state."""
        if self._states.get(state.user_id) is state:
            del self._states[state.user_id]

    def active_states(self) -> list[ConversationState]:
        return list(self._states.values())

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._states

    def __len__(self) -> int:
        return len(self._states)
