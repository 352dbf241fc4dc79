"""Role-based LLM routing for the chart pipeline.

Every prompt is sent under one of four roles, and the role picks the model
and temperature for the active provider:

- refiner: clarifies the question
- analyzer: chooses chart type and columns
- synthesizer: writes SQL
- verifier: scores executed results

Providers: ollama (default, local HTTP), openai and anthropic (optional
extras, imported on first use).

Environment variables:
- CQ_LLM_PROVIDER: ollama | openai | anthropic
- CQ_<ROLE>_MODEL / CQ_<ROLE>_TEMPERATURE: per-role overrides
- CQ_OPENAI_API_KEY or OPENAI_API_KEY, CQ_ANTHROPIC_API_KEY or ANTHROPIC_API_KEY
"""

import importlib
import importlib.util
import logging
import os
from typing import Any

from chartquery.llm.ollama_client import ollama_chat


logger = logging.getLogger(__name__)

ROLES = ("refiner", "analyzer", "synthesizer", "verifier")

DEFAULT_PROVIDER = "ollama"

# provider -> role -> model; SQL writing gets the strongest model
DEFAULT_MODELS = {
    "ollama": {
        "refiner": "llama3.1:8b",
        "analyzer": "qwen2.5:14b-instruct",
        "synthesizer": "qwen2.5-coder:14b",
        "verifier": "qwen2.5:14b-instruct",
    },
    "openai": {
        "refiner": "gpt-4o-mini",
        "analyzer": "gpt-4o-mini",
        "synthesizer": "gpt-4o",
        "verifier": "gpt-4o-mini",
    },
    "anthropic": {
        "refiner": "claude-3-5-haiku-20241022",
        "analyzer": "claude-3-5-haiku-20241022",
        "synthesizer": "claude-3-5-sonnet-20241022",
        "verifier": "claude-3-5-haiku-20241022",
    },
}

DEFAULT_TEMPERATURES = {
    "refiner": 0.3,
    "analyzer": 0.1,
    "synthesizer": 0.0,
    "verifier": 0.1,
}

# provider -> env vars holding its API key, in lookup order
API_KEY_ENV = {
    "openai": ("CQ_OPENAI_API_KEY", "OPENAI_API_KEY"),
    "anthropic": ("CQ_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
}

DEFAULT_MAX_TOKENS = 2048
DEFAULT_SYSTEM_PROMPT = "You turn questions about tabular data into charts. Reply with JSON."


def active_provider(provider: str | None = None) -> str:
    return (provider or os.environ.get("CQ_LLM_PROVIDER") or DEFAULT_PROVIDER).strip().lower()


def _api_key(provider: str) -> str | None:
    for name in API_KEY_ENV.get(provider, ()):
        value = os.environ.get(name)
        if value:
            return value
    return None


def _import_sdk(provider: str):
    try:
        return importlib.import_module(provider)
    except ImportError:
        raise ImportError(
            f"The {provider} package is not installed. Install with: pip install chartquery[{provider}]"
        ) from None


def _require_key(provider: str) -> str:
    key = _api_key(provider)
    if not key:
        names = " or ".join(API_KEY_ENV[provider])
        raise ValueError(f"No API key for {provider}. Set {names}.")
    return key


def _call_openai(messages, model: str, temperature: float, max_tokens: int | None, timeout: int) -> str:
    sdk = _import_sdk("openai")
    client = sdk.OpenAI(api_key=_require_key("openai"), timeout=timeout)
    completion = client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
    )
    return completion.choices[0].message.content or ""


def _call_anthropic(messages, model: str, temperature: float, max_tokens: int | None, timeout: int) -> str:
    sdk = _import_sdk("anthropic")
    client = sdk.Anthropic(api_key=_require_key("anthropic"), timeout=timeout)

    # The Messages API takes the system prompt as a separate argument
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    turns = [m for m in messages if m["role"] != "system"]

    reply = client.messages.create(
        model=model,
        system=system or DEFAULT_SYSTEM_PROMPT,
        messages=turns,
        temperature=temperature,
        max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
    )
    return "".join(getattr(block, "text", "") for block in reply.content)


# SDK-backed providers; ollama is served by ollama_chat
PROVIDER_CALLS = {
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def resolve_model(role: str, provider: str | None = None) -> tuple[str, float]:
    """Return ``(model, temperature)`` for a role under a provider.

    Raises:
        ValueError: If the role is unknown
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of {', '.join(ROLES)}")

    models = DEFAULT_MODELS.get(active_provider(provider), DEFAULT_MODELS[DEFAULT_PROVIDER])
    model = os.environ.get(f"CQ_{role.upper()}_MODEL") or models[role]
    temperature = os.environ.get(f"CQ_{role.upper()}_TEMPERATURE")
    return model, float(temperature) if temperature else DEFAULT_TEMPERATURES[role]


def call_llm(
    messages: list[dict[str, str]],
    *,
    role: str = "synthesizer",
    max_tokens: int | None = None,
    timeout: int = 60,
    provider: str | None = None,
    model: str | None = None,
    temperature_override: float | None = None,
) -> str:
    """Send chat messages to the model serving ``role``.

    Args:
        messages: Chat messages with 'role' and 'content'
        role: Pipeline role (see ROLES)
        max_tokens: Response token cap
        timeout: Request timeout in seconds
        provider: Provider override (default: CQ_LLM_PROVIDER)
        model: Model override
        temperature_override: Temperature override

    Returns:
        Response text

    Raises:
        ValueError: For an unknown role or provider, or a failed call
    """
    name = active_provider(provider)
    if name != DEFAULT_PROVIDER and name not in PROVIDER_CALLS:
        supported = ", ".join((DEFAULT_PROVIDER, *PROVIDER_CALLS))
        raise ValueError(f"Unsupported LLM provider: {name}. Supported: {supported}")

    role_model, temperature = resolve_model(role, name)
    chosen_model = model or role_model
    chosen_temperature = temperature if temperature_override is None else temperature_override

    logger.debug("LLM call role=%s provider=%s model=%s", role, name, chosen_model)
    if name == DEFAULT_PROVIDER:
        return ollama_chat(
            messages, model=chosen_model, temperature=chosen_temperature, max_tokens=max_tokens, timeout=timeout
        )
    return PROVIDER_CALLS[name](messages, chosen_model, chosen_temperature, max_tokens, timeout)


def get_available_providers() -> list[str]:
    """Providers usable right now: ollama plus SDKs that are installed and keyed."""
    available = [DEFAULT_PROVIDER]
    for name in ("openai", "anthropic"):
        if importlib.util.find_spec(name) is not None and _api_key(name):
            available.append(name)
    return available


def get_current_config() -> dict[str, Any]:
    """Provider and per-role models, without secrets."""
    name = active_provider()
    return {
        "provider": name,
        "models": {role: resolve_model(role, name)[0] for role in ROLES},
        "temperatures": {role: resolve_model(role, name)[1] for role in ROLES},
        "available_providers": get_available_providers(),
    }
