"""LLM backend client and response parsing."""

from llm.client import AuthError, LLMClient, LLMError, LLMHealth, RequestError, UnconfiguredError
from llm.config import DEFAULT_SAMPLING, LLMSettings, SamplingParams
from llm.parsing import Fallback, Parsed, ParseResult, extract_json_object, parse_payload

__all__ = [
    "DEFAULT_SAMPLING",
    "AuthError",
    "Fallback",
    "LLMClient",
    "LLMError",
    "LLMHealth",
    "LLMSettings",
    "ParseResult",
    "Parsed",
    "RequestError",
    "SamplingParams",
    "UnconfiguredError",
    "extract_json_object",
    "parse_payload",
]
