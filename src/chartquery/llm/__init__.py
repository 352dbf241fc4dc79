"""LLM access: provider router and the async completion client."""

from chartquery.llm.client import LLMClient, extract_json_object
from chartquery.llm.router import ROLES, call_llm, get_available_providers, get_current_config

__all__ = [
    "LLMClient",
    "ROLES",
    "call_llm",
    "extract_json_object",
    "get_available_providers",
    "get_current_config",
]
