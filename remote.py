"""Client for the hosted Gemini API.

The session only depends on the `RemoteModel` protocol; `GeminiRemote` is the
google-genai implementation used by both drivers.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Dict, Optional, Protocol, Sequence, TypeVar

from google import genai
from google.genai import types

from models import Message
from settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteModel(Protocol):
    async def generate(self, model: str, history: Sequence[Message]) -> str:
        ...

    async def stream(self, model: str, history: Sequence[Message]) -> AsyncIterator[str]:
        ...


class GeminiRemote:
    """Sends a full transcript to a Gemini model and returns its reply.

    There is no automatic retry. With a non-zero ``timeout`` a stalled call
    raises ``TimeoutError``; when streaming the limit applies to each chunk.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        system_instruction: str = "",
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ):
        if not api_key:
            raise ValueError(
                "Google API key required. Set the GOOGLE_API_KEY environment variable."
            )
        self._client = genai.Client(api_key=api_key)
        self._timeout = timeout
        self._system_instruction = system_instruction
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiRemote":
        return cls(
            api_key=settings.API_KEY,
            timeout=settings.REQUEST_TIMEOUT,
            system_instruction=settings.SYSTEM_INSTRUCTION,
            temperature=settings.TEMPERATURE,
            max_output_tokens=settings.MAX_OUTPUT_TOKENS,
        )

    def _config(self) -> Optional[types.GenerateContentConfig]:
        options: Dict[str, Any] = {}
        if self._system_instruction:
            options["system_instruction"] = self._system_instruction
        if self._temperature is not None:
            options["temperature"] = self._temperature
        if self._max_output_tokens is not None:
            options["max_output_tokens"] = self._max_output_tokens
        return types.GenerateContentConfig(**options) if options else None

    async def _with_timeout(self, awaitable: Awaitable[T], model: str) -> T:
        if not self._timeout:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"No response from {model} within {self._timeout:g}s") from e

    async def generate(self, model: str, history: Sequence[Message]) -> str:
        logger.debug(f"generate_content model={model} messages={len(history)}")
        response = await self._with_timeout(
            self._client.aio.models.generate_content(
                model=model,
                contents=[m.to_content() for m in history],
                config=self._config(),
            ),
            model,
        )
        text = response.text
        if text is None:
            # no candidate text, e.g. blocked by safety filters
            raise ValueError("Empty response from model")
        return text

    async def stream(self, model: str, history: Sequence[Message]) -> AsyncIterator[str]:
        logger.debug(f"generate_content_stream model={model} messages={len(history)}")
        chunks = await self._with_timeout(
            self._client.aio.models.generate_content_stream(
                model=model,
                contents=[m.to_content() for m in history],
                config=self._config(),
            ),
            model,
        )
        return self._fragments(chunks, model)

    async def _fragments(self, chunks: AsyncIterator[Any], model: str) -> AsyncIterator[str]:
        iterator = chunks.__aiter__()
        while True:
            try:
                chunk = await self._with_timeout(iterator.__anext__(), model)
            except StopAsyncIteration:
                return
            yield chunk.text or ""
