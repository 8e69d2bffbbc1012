"""Exception hierarchy for the digest pipeline."""

from __future__ import annotations


class DigestError(Exception):
    """Base class for all digest errors."""


class ConfigError(DigestError):
    """Configuration is missing or invalid."""


class LLMError(DigestError):
    """Base class for LLM invocation failures."""


class LLMBackendError(LLMError):
    """A single backend attempt failed (HTTP status, network, timeout, bad body)."""

    def __init__(self, message: str, base_url: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.base_url = base_url
        self.status = status


class ResponseDecodeError(LLMBackendError):
    """Response body was neither a JSON object nor an SSE stream."""


class AllBackendsFailedError(LLMError):
    """Every configured backend failed for one invocation."""

    def __init__(self, backend_count: int) -> None:
        super().__init__(
            f"All {backend_count} LLM API backends failed. Check the llm.apis section of your config."
        )
        self.backend_count = backend_count


class ResponseParseError(LLMError):
    """No JSON object could be extracted from the model's text."""


class NoArticlesError(DigestError):
    """No article was fetched from any feed."""


class NoRecentArticlesError(DigestError):
    """No article falls inside the requested time range."""

    def __init__(self, hours: int) -> None:
        super().__init__(
            f"No articles found within the last {hours} hours. "
            f"Try increasing --hours (e.g. --hours 168 for one week)."
        )
        self.hours = hours
