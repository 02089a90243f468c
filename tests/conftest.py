"""Pytest configuration for shared test fixtures.

Updates:
  v0.2.0 - 2026-10-07 - Add scripted store wrapper for holding and failing gateway calls.
  v0.1.0 - 2026-09-12 - Provide signed-in users and a local store per test.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any

import pytest

from core.gateway import LocalPromptStore
from core.library import PromptLibrary
from models.user_model import User

ALICE = User(id="user-alice", username="alice", email="alice@example.com")
BOB = User(id="user-bob", username="bob", email="bob@example.com")


class StaticAuthProvider:
    """Auth provider whose signed-in user is switched directly by tests."""

    def __init__(self, user: User | None = None) -> None:
        self.user = user

    def current_user(self) -> User | None:
        return self.user

    async def sign_in(self, email: str, password: str) -> User:
        self.user = ALICE if email == ALICE.email else BOB
        return self.user

    async def sign_up(self, username: str, email: str, password: str) -> User:
        self.user = User(id=f"user-{username}", username=username, email=email)
        return self.user

    async def sign_out(self) -> None:
        self.user = None


class ScriptedStore:
    """Wraps a prompt store so tests can hold, fail, and record gateway calls."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._gates: dict[str, asyncio.Event] = {}

    @property
    def inner(self) -> Any:
        return self._inner

    def fail_next(self, method: str, error: Exception) -> None:
        """Make the next call to *method* raise *error* instead of reaching the store."""
        self._failures[method].append(error)

    def hold(self, method: str) -> asyncio.Event:
        """Block calls to *method* until the returned event is set."""
        gate = asyncio.Event()
        self._gates[method] = gate
        return gate

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    def __getattr__(self, name: str) -> Any:
        target = getattr(self._inner, name)
        if not inspect.iscoroutinefunction(target):
            return target

        async def _call(*args: Any, **kwargs: Any) -> Any:
            self.calls.append((name, args))
            gate = self._gates.get(name)
            if gate is not None:
                await gate.wait()
            if self._failures[name]:
                raise self._failures[name].pop(0)
            return await target(*args, **kwargs)

        return _call


@pytest.fixture()
def auth() -> StaticAuthProvider:
    return StaticAuthProvider(ALICE)


@pytest.fixture()
def local_store(auth: StaticAuthProvider) -> LocalPromptStore:
    return LocalPromptStore(current_user=auth.current_user)


@pytest.fixture()
def scripted(local_store: LocalPromptStore) -> ScriptedStore:
    return ScriptedStore(local_store)


@pytest.fixture()
def library(scripted: ScriptedStore, auth: StaticAuthProvider) -> PromptLibrary:
    return PromptLibrary(scripted, auth=auth)  # type: ignore[arg-type]
