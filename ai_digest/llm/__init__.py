"""LLM access: failover client and structured-response parsing."""

from ai_digest.llm.client import BackendCursor, LLMClient, decode_response
from ai_digest.llm.parsing import parse_structured_response

__all__ = ["BackendCursor", "LLMClient", "decode_response", "parse_structured_response"]
