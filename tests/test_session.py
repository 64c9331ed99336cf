"""Tests for the conversation session."""
import asyncio

import pytest

from errors import BusyError, EmptyInputError, InvalidModelError, RemoteServiceError
from models import Message
from session import Session


def user(text):
    return Message(role="user", text=text)


def model(text):
    return Message(role="model", text=text)


class TestSendTurn:
    """Tests for non-streamed turns."""

    @pytest.mark.asyncio
    async def test_first_turn(self, session, remote):
        remote.replies = ["hi there"]

        reply = await session.send_turn("hello")

        assert reply == model("hi there")
        assert session.history == (user("hello"), model("hi there"))
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_sends_whole_history_to_current_model(self, session, remote):
        remote.replies = ["one", "two"]

        await session.send_turn("first")
        await session.send_turn("second")

        sent_model, sent_history = remote.calls[-1]
        assert sent_model == "gemini-2.0-flash"
        assert sent_history == [user("first"), model("one"), user("second")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("turns", [1, 2, 5])
    async def test_history_alternates(self, session, turns):
        for i in range(turns):
            await session.send_turn(f"message {i}")

        history = session.history
        assert len(history) == 2 * turns
        assert [m.role for m in history] == ["user", "model"] * turns

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_input_rejected(self, session, remote, text):
        await session.send_turn("hello")
        before = session.history

        with pytest.raises(EmptyInputError):
            await session.send_turn(text)

        assert session.history == before
        assert len(remote.calls) == 1
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_remote_failure_on_empty_history(self, session, remote):
        remote.error = ConnectionError("network down")

        with pytest.raises(RemoteServiceError, match="network down") as exc_info:
            await session.send_turn("hello")

        assert session.history == ()
        assert not session.in_flight
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_failed_turn_can_be_resent(self, session, remote):
        remote.replies = ["one"]
        await session.send_turn("first")
        before = session.history

        remote.error = RuntimeError("503 Service Unavailable")
        with pytest.raises(RemoteServiceError):
            await session.send_turn("again")
        assert session.history == before

        remote.error = None
        remote.replies = ["two"]
        reply = await session.send_turn("again")

        assert reply == model("two")
        assert session.history == before + (user("again"), model("two"))

    @pytest.mark.asyncio
    async def test_error_without_message_uses_type_name(self, session, remote):
        remote.error = TimeoutError()

        with pytest.raises(RemoteServiceError, match="TimeoutError"):
            await session.send_turn("hello")

    @pytest.mark.asyncio
    async def test_non_text_reply_is_rolled_back(self, session, remote):
        remote.replies = [None]

        with pytest.raises(RemoteServiceError, match="Malformed"):
            await session.send_turn("hello")

        assert session.history == ()

    @pytest.mark.asyncio
    async def test_overlapping_turn_is_busy(self, session, remote):
        remote.gate = asyncio.Event()
        remote.replies = ["first reply"]

        first = asyncio.create_task(session.send_turn("first"))
        await asyncio.sleep(0)
        assert session.in_flight

        with pytest.raises(BusyError):
            await session.send_turn("second")

        remote.gate.set()
        reply = await first

        assert reply == model("first reply")
        assert session.history == (user("first"), model("first reply"))
        assert len(remote.calls) == 1

    @pytest.mark.asyncio
    async def test_cancelled_turn_is_rolled_back(self, session, remote):
        remote.gate = asyncio.Event()

        task = asyncio.create_task(session.send_turn("hello"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.history == ()
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_clear_during_turn_drops_reply(self, session, remote):
        remote.gate = asyncio.Event()
        remote.replies = ["late"]

        task = asyncio.create_task(session.send_turn("hello"))
        await asyncio.sleep(0)
        session.clear()
        remote.gate.set()
        reply = await task

        assert reply == model("late")
        assert session.history == ()
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_select_during_turn_drops_reply(self, session, remote):
        await session.send_turn("earlier")
        remote.gate = asyncio.Event()
        remote.replies = ["late"]

        task = asyncio.create_task(session.send_turn("hello"))
        await asyncio.sleep(0)
        session.select_model("gemini-1.5-pro")
        remote.gate.set()
        reply = await task

        assert reply == model("late")
        assert remote.calls[-1][0] == "gemini-2.0-flash"
        assert session.model == "gemini-1.5-pro"
        assert session.history == ()
        assert not session.in_flight


class TestModelSelection:
    """Tests for model listing and switching."""

    def test_list_models(self, session, catalog):
        assert session.list_models() is catalog

    def test_default_model_is_first_catalog_entry(self, remote, catalog):
        assert Session(remote, catalog=catalog).model == "gemini-3-pro-preview"

    def test_unknown_start_model(self, remote, catalog):
        with pytest.raises(InvalidModelError):
            Session(remote, catalog=catalog, model="gpt-4")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key_or_id", ["5", "gemini-2.0-flash-lite"])
    async def test_select_clears_history(self, session, key_or_id):
        await session.send_turn("hello")
        await session.send_turn("again")

        info = session.select_model(key_or_id)

        assert info.id == "gemini-2.0-flash-lite"
        assert session.model == "gemini-2.0-flash-lite"
        assert session.history == ()

    @pytest.mark.asyncio
    async def test_select_same_model_still_clears(self, session):
        await session.send_turn("hello")

        session.select_model("gemini-2.0-flash")

        assert session.history == ()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", ["99", "gemini-9", ""])
    async def test_select_unknown_changes_nothing(self, session, bad):
        await session.send_turn("hello")
        before = session.history

        with pytest.raises(InvalidModelError):
            session.select_model(bad)

        assert session.history == before
        assert session.model == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_next_turn_uses_new_model(self, session, remote):
        session.select_model("6")
        await session.send_turn("hello")

        assert remote.calls[-1][0] == "gemini-1.5-pro"


class TestClear:
    """Tests for clearing history."""

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, session):
        await session.send_turn("hello")

        session.clear()
        session.clear()

        assert session.history == ()
        assert session.model == "gemini-2.0-flash"

    def test_seeded_history(self, remote, catalog):
        seed = [user("a"), model("b")]
        session = Session(remote, catalog=catalog, history=seed)

        seed.append(user("c"))

        assert session.history == (user("a"), model("b"))


class TestStreamTurn:
    """Tests for streamed turns."""

    @pytest.mark.asyncio
    async def test_fragments_become_one_message(self, session, remote):
        remote.fragments = ["hi", " ", "there"]

        turn = await session.stream_turn("hello")
        received = [fragment async for fragment in turn]

        assert received == ["hi", " ", "there"]
        assert turn.message == model("hi there")
        assert session.history == (user("hello"), model("hi there"))
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_busy_while_streaming(self, session, remote):
        remote.fragments = ["a", "b"]

        turn = await session.stream_turn("hello")
        with pytest.raises(BusyError):
            await session.send_turn("second")

        async for _ in turn:
            pass
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_error_mid_stream_rolls_back(self, session, remote):
        await session.send_turn("earlier")
        before = session.history
        remote.fragments = ["partial"]
        remote.stream_error = ConnectionResetError("connection reset")

        turn = await session.stream_turn("hello")
        received = []
        with pytest.raises(RemoteServiceError, match="connection reset"):
            async for fragment in turn:
                received.append(fragment)

        assert received == ["partial"]
        assert session.history == before
        assert not session.in_flight
        assert turn.message is None

    @pytest.mark.asyncio
    async def test_open_failure_rolls_back(self, session, remote):
        remote.error = ConnectionError("refused")

        with pytest.raises(RemoteServiceError):
            await session.stream_turn("hello")

        assert session.history == ()
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_not_restartable(self, session, remote):
        remote.fragments = ["a"]

        turn = await session.stream_turn("hello")
        assert [f async for f in turn] == ["a"]
        assert [f async for f in turn] == []
        assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_abandoned_stream_rolls_back(self, session, remote):
        remote.fragments = ["a", "b", "c"]

        async with await session.stream_turn("hello") as turn:
            assert await turn.__anext__() == "a"

        assert turn.done
        assert session.history == ()
        assert not session.in_flight
        assert remote.closed

    @pytest.mark.asyncio
    async def test_blank_input_rejected(self, session, remote):
        with pytest.raises(EmptyInputError):
            await session.stream_turn("  ")
        assert remote.calls == []
