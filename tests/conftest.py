"""Pytest configuration and shared fixtures."""
import asyncio
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import pytest

from catalog import DEFAULT_MODELS, ModelCatalog
from models import Message
from session import Session


class FakeRemote:
    """In-memory stand-in for the Gemini API.

    Records every call as ``(model, history)``. Set ``error`` to make calls
    fail, ``gate`` to hold a call until the event is set, and
    ``stream_error`` to fail a stream after its fragments.
    """

    def __init__(
        self,
        replies: Optional[List[str]] = None,
        fragments: Optional[List[str]] = None,
    ):
        self.replies = list(replies or [])
        self.fragments = list(fragments or [])
        self.calls: List[Tuple[str, List[Message]]] = []
        self.error: Optional[Exception] = None
        self.stream_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def generate(self, model: str, history: Sequence[Message]) -> str:
        self.calls.append((model, list(history)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"reply {len(self.calls)}"

    async def stream(self, model: str, history: Sequence[Message]) -> AsyncIterator[str]:
        self.calls.append((model, list(history)))
        if self.error is not None:
            raise self.error
        return self._fragments()

    async def _fragments(self) -> AsyncIterator[str]:
        try:
            for fragment in self.fragments:
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.closed = True


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def catalog():
    return ModelCatalog(DEFAULT_MODELS)


@pytest.fixture
def session(remote, catalog):
    return Session(remote, catalog=catalog, model="gemini-2.0-flash")
