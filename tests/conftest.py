from __future__ import annotations

import pytest

from parley import ChatSession, Connection, InMemoryConversationStore
from tests.fakes import BASE_URL, FakeBackend


class StubCallable:
    def __init__(self) -> None:
        self.return_value = None
        self.side_effect = None
        self.calls = []

    def _next_effect(self):
        if isinstance(self.side_effect, list):
            if not self.side_effect:
                return None
            return self.side_effect.pop(0)
        return self.side_effect

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.side_effect is not None:
            effect = self._next_effect()
            if isinstance(effect, Exception):
                raise effect
            if callable(effect):
                return effect(*args, **kwargs)
            return effect
        return self.return_value

    def kinds(self) -> list[str]:
        return [args[0].kind for args, _ in self.calls]

    def events(self, kind: str) -> list[dict]:
        return [args[0].data for args, _ in self.calls if args[0].kind == kind]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def connection() -> Connection:
    return Connection(base_url=BASE_URL, api_key="sk-test")


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def listener() -> StubCallable:
    return StubCallable()


@pytest.fixture
def make_session(backend, connection, listener):
    def _make(**kwargs) -> ChatSession:
        kwargs.setdefault("model", "test-model")
        kwargs.setdefault("listener", listener)
        return ChatSession(connection, client_args={"transport": backend.transport}, **kwargs)

    return _make
