"""Conversation session shared by the terminal and HTTP drivers.

A session holds the transcript, the selected model and an in-flight flag.
It is either idle or awaiting a response; only one turn may be outstanding.
A failed turn removes its user message again so the same text can be resent.
"""

import logging
from typing import AsyncIterator, Iterable, List, Optional, Tuple

from catalog import DEFAULT_MODELS, ModelCatalog
from errors import BusyError, EmptyInputError, RemoteServiceError
from models import Message, ModelInfo
from remote import RemoteModel

logger = logging.getLogger(__name__)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class Session:
    """Ordered message history plus the model it is addressed to.

    Args:
        remote: Client for the remote model service.
        catalog: Models that may be selected (built-in catalog if omitted).
        model: Catalog key or id to start with (first catalog entry if omitted).
        history: Messages to seed the transcript with.
    """

    def __init__(
        self,
        remote: RemoteModel,
        catalog: Optional[ModelCatalog] = None,
        model: Optional[str] = None,
        history: Optional[Iterable[Message]] = None,
    ):
        self._remote = remote
        self._catalog = catalog if catalog is not None else ModelCatalog(DEFAULT_MODELS)
        if model is None:
            model = next(iter(self._catalog))
        self._model = self._catalog.resolve(model).id
        self._history: List[Message] = list(history or [])
        self._in_flight = False

    @property
    def model(self) -> str:
        return self._model

    @property
    def history(self) -> Tuple[Message, ...]:
        return tuple(self._history)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def list_models(self) -> ModelCatalog:
        return self._catalog

    def select_model(self, key_or_id: str) -> ModelInfo:
        """Switch models. Prior context is dropped; unknown ids change nothing."""
        info = self._catalog.resolve(key_or_id)
        self._model = info.id
        self._history.clear()
        logger.info(f"Switched to {info.id}, history cleared")
        return info

    def clear(self) -> None:
        self._history.clear()

    async def send_turn(self, text: str) -> Message:
        """Send ``text`` with the whole history and record the model's reply.

        Raises:
            EmptyInputError: ``text`` is blank.
            BusyError: another turn is still awaiting its response.
            RemoteServiceError: the remote call failed; history is unchanged.
        """
        pending = self._begin_turn(text)
        model = self._model
        try:
            reply = await self._remote.generate(model, tuple(self._history))
            if not isinstance(reply, str):
                raise TypeError(f"Malformed response from model: {reply!r}")
        except Exception as e:
            self._abort_turn(pending)
            logger.warning(f"Turn to {model} failed: {_describe(e)}")
            raise RemoteServiceError(_describe(e)) from e
        except BaseException:
            self._abort_turn(pending)
            raise
        return self._finish_turn(pending, reply)

    async def stream_turn(self, text: str) -> "TurnStream":
        """Like `send_turn`, but the reply arrives as a stream of fragments.

        Iterate the returned `TurnStream`; the reply is recorded once the
        stream ends normally.
        """
        pending = self._begin_turn(text)
        model = self._model
        try:
            fragments = await self._remote.stream(model, tuple(self._history))
        except Exception as e:
            self._abort_turn(pending)
            logger.warning(f"Stream to {model} failed to open: {_describe(e)}")
            raise RemoteServiceError(_describe(e)) from e
        except BaseException:
            self._abort_turn(pending)
            raise
        return TurnStream(self, pending, fragments)

    def _begin_turn(self, text: str) -> Message:
        if not text or not text.strip():
            raise EmptyInputError("Message is empty")
        if self._in_flight:
            raise BusyError()
        pending = Message(role="user", text=text)
        self._history.append(pending)
        self._in_flight = True
        logger.debug(f"Turn started, model={self._model} messages={len(self._history)}")
        return pending

    def _finish_turn(self, pending: Message, text: str) -> Message:
        self._in_flight = False
        reply = Message(role="model", text=text)
        # a clear or model switch during the turn drops the transcript it belonged to
        if self._history and self._history[-1] is pending:
            self._history.append(reply)
        else:
            logger.info("History was reset during the turn; reply not recorded")
        return reply

    def _abort_turn(self, pending: Message) -> None:
        self._in_flight = False
        if self._history and self._history[-1] is pending:
            self._history.pop()


class TurnStream:
    """Fragments of one streamed reply. Finite and not restartable.

    A failure mid-stream rolls the turn back and raises `RemoteServiceError`;
    fragments already yielded stay with the caller. Closing an unfinished
    stream also rolls the turn back.
    """

    def __init__(self, session: Session, pending: Message, fragments: AsyncIterator[str]):
        self._session = session
        self._pending = pending
        self._fragments = fragments.__aiter__()
        self._parts: List[str] = []
        self._done = False
        self.message: Optional[Message] = None

    @property
    def done(self) -> bool:
        return self._done

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> str:
        if self._done:
            raise StopAsyncIteration
        try:
            fragment = await self._fragments.__anext__()
        except StopAsyncIteration:
            self._done = True
            self.message = self._session._finish_turn(self._pending, self.text)
            raise
        except Exception as e:
            self._done = True
            self._session._abort_turn(self._pending)
            logger.warning(f"Stream failed after {len(self._parts)} fragments: {_describe(e)}")
            raise RemoteServiceError(_describe(e)) from e
        except BaseException:
            self._done = True
            self._session._abort_turn(self._pending)
            raise
        self._parts.append(fragment)
        return fragment

    async def aclose(self) -> None:
        if self._done:
            return
        self._done = True
        self._session._abort_turn(self._pending)
        close = getattr(self._fragments, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "TurnStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
