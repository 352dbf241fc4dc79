"""Async LLM facade and JSON extraction used by every pipeline stage."""

import asyncio
import json
import logging
import re
from typing import Any

from chartquery.errors import LLMError
from chartquery.llm.router import call_llm


logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = (
    "Respond with a single JSON object only. "
    "No Markdown, no code fences, no text before or after the object."
)

_JSON_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Extract the first JSON object embedded in free LLM text.

    Markdown fences are stripped, then the greedy span from the first "{"
    to the last "}" is decoded.

    Args:
        text: Raw LLM response text

    Returns:
        Decoded dict, or None when no object span exists, the span is not
        valid JSON, or the decoded value is not an object
    """
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()

    match = _JSON_SPAN_RE.search(cleaned)
    if not match:
        return None

    try:
        data = json.loads(match.group())
    except json.JSONDecodeError:
        return None

    return data if isinstance(data, dict) else None


class LLMClient:
    """Async text-completion client bound to one provider configuration.

    The blocking router call runs in a worker thread and is bounded by
    ``timeout``. Every failure surfaces as LLMError.

    Usage:
        llm = LLMClient(provider="openai")
        text = await llm.complete(prompt, role="analyzer")
    """

    def __init__(
        self,
        *,
        provider: str | None = None,
        model_overrides: dict[str, str] | None = None,
        timeout: float = 60.0,
    ):
        self.provider = provider
        self.model_overrides = dict(model_overrides or {})
        self.timeout = timeout

    async def complete(
        self,
        prompt: str,
        *,
        role: str,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.debug("LLM request role=%s chars=%d", role, len(prompt))
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(
                    call_llm,
                    messages,
                    role=role,
                    timeout=max(1, int(self.timeout)),
                    provider=self.provider,
                    model=self.model_overrides.get(role),
                    temperature_override=temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMError(f"LLM call timed out after {self.timeout}s", role=role) from e
        except (ValueError, ImportError, ConnectionError, OSError) as e:
            raise LLMError(f"LLM call failed: {e}", role=role) from e
        except Exception as e:
            # Provider SDKs raise their own exception trees
            raise LLMError(f"LLM provider error: {e}", role=role) from e

        logger.debug("LLM response role=%s chars=%d", role, len(text or ""))
        return text or ""
