"""Base agent class for the chart query pipeline.

Every pipeline stage is an agent holding an async LLM client. Agents that
talk to the store run the blocking store call in a worker thread through
``run_in_thread`` so the event loop is never blocked.
"""

import asyncio
import logging
import time
from abc import ABC
from typing import Any, Callable, Protocol, TypeVar

from chartquery.errors import StoreError
from chartquery.llm.client import JSON_ONLY_INSTRUCTION, extract_json_object


logger = logging.getLogger(__name__)

R = TypeVar("R")


class CompletionClient(Protocol):
    """Anything that can turn a prompt into text (LLMClient, test doubles)."""

    async def complete(
        self,
        prompt: str,
        *,
        role: str,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> str: ...


async def run_in_thread(func: Callable[..., R], *args: Any, timeout: float | None = None) -> R:
    """Run a blocking store call in a worker thread.

    Raises:
        StoreError: If the call does not finish within ``timeout`` seconds
    """
    call = asyncio.to_thread(func, *args)
    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StoreError(f"Store call timed out after {timeout}s") from e


class BaseAgent(ABC):
    """Abstract base class for all pipeline agents.

    Subclasses set ``name`` and ``llm_role`` and implement their own
    async entry point. LLM-backed agents call ``ask_llm`` and then
    ``parse_json_response``.
    """

    name: str = "base_agent"
    llm_role: str = "synthesizer"
    temperature: float | None = None

    def __init__(self, llm: CompletionClient | None = None):
        self.llm = llm
        self._start_time: float | None = None
        self._end_time: float | None = None

    def _start_timer(self) -> None:
        self._start_time = time.perf_counter()

    def _stop_timer(self) -> float:
        """Stop execution timer and return elapsed time in ms."""
        self._end_time = time.perf_counter()
        if self._start_time is None:
            return 0.0
        return (self._end_time - self._start_time) * 1000

    async def ask_llm(self, prompt: str, *, role: str | None = None) -> str:
        """Send a prompt with the JSON-only instruction appended.

        Raises:
            LLMError: If the provider fails or times out
        """
        if self.llm is None:
            raise RuntimeError(f"{self.name} has no LLM client")
        full_prompt = f"{prompt.rstrip()}\n\n{JSON_ONLY_INSTRUCTION}"
        self._start_timer()
        try:
            return await self.llm.complete(
                full_prompt,
                role=role or self.llm_role,
                temperature=self.temperature,
            )
        finally:
            logger.debug("%s LLM call took %.0fms", self.name, self._stop_timer())

    def parse_json_response(self, response: str) -> dict[str, Any]:
        """Parse the first JSON object out of an LLM response.

        Raises:
            ValueError: If the response holds no decodable JSON object
        """
        data = extract_json_object(response)
        if data is None:
            preview = (response or "")[:120].replace("\n", " ")
            raise ValueError(f"No JSON object in {self.name} response: {preview!r}")
        return data

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
