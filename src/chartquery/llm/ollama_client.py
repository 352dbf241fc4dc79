"""Blocking client for a local Ollama server's chat endpoint.

Transient failures (refused connection, timeout, HTTP 5xx) are retried with
exponential backoff; everything else raises immediately.
"""

import logging
import os
import time

import requests


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
BACKOFF_SECONDS = 0.5


def _settings() -> tuple[str, int, int]:
    base_url = os.environ.get("CQ_OLLAMA_BASE_URL", DEFAULT_BASE_URL).rstrip("/")
    retries = int(os.environ.get("CQ_OLLAMA_MAX_RETRIES", "2"))
    # schema listings plus sample rows overflow Ollama's 2048-token default
    num_ctx = int(os.environ.get("CQ_OLLAMA_NUM_CTX", "8192"))
    return base_url, retries, num_ctx


def _is_transient(error: requests.RequestException) -> bool:
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    response = getattr(error, "response", None)
    return response is not None and response.status_code >= 500


def _describe(error: requests.RequestException, base_url: str, model: str, timeout: int) -> str:
    if isinstance(error, requests.ConnectionError):
        return f"Cannot connect to Ollama at {base_url}; is `ollama serve` running?"
    if isinstance(error, requests.Timeout):
        return f"Ollama timed out after {timeout}s (model: {model})"
    response = getattr(error, "response", None)
    if response is not None:
        return f"Ollama API error ({response.status_code}): {response.text[:500]}"
    return f"Ollama request failed: {error}"


def ollama_chat(
    messages: list[dict[str, str]],
    *,
    model: str,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    timeout: int = 30,
) -> str:
    """Run one non-streaming chat completion and return the reply text.

    Raises:
        ConnectionError: If the server cannot be reached after all retries
        ValueError: On timeouts, HTTP errors or a malformed reply
    """
    base_url, retries, num_ctx = _settings()
    options: dict = {"temperature": temperature, "num_ctx": num_ctx}
    if max_tokens is not None:
        options["num_predict"] = max_tokens
    payload = {"model": model, "messages": messages, "stream": False, "options": options}

    for attempt in range(retries + 1):
        try:
            response = requests.post(f"{base_url}/api/chat", json=payload, timeout=timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            if _is_transient(e) and attempt < retries:
                delay = BACKOFF_SECONDS * 2**attempt
                logger.warning("Ollama attempt %d failed (%s), retrying in %.1fs", attempt + 1, e.__class__.__name__, delay)
                time.sleep(delay)
                continue
            message = _describe(e, base_url, model, timeout)
            if isinstance(e, requests.ConnectionError):
                raise ConnectionError(message) from e
            raise ValueError(message) from e

        content = (body.get("message") or {}).get("content")
        if content is None:
            raise ValueError(f"Unexpected Ollama response: {str(body)[:300]}")
        return content

    raise ValueError("Ollama call made no attempts")
