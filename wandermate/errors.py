# errors.py
"""
Agent Error Classes

Exceptions raised across the orchestrator:
- ValidationError: malformed or missing input, rejected before any side effect
- RetryableProviderError: transient upstream failure, retried by the dispatcher
- FatalProviderError: non-retryable upstream rejection
- ProviderNotConfigured: a provider is missing credentials or endpoints
- ConcurrencyTimeout: the session lock could not be acquired in time

An unrecognised intent is not an error; it resolves to a DECLINE reply.
"""

from typing import Optional


class AgentError(Exception):
    """Base class for orchestrator errors."""
    pass


class ValidationError(AgentError):
    """Raised when inbound input is malformed or missing a required field."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ProviderError(AgentError):
    """Raised by a capability provider."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class RetryableProviderError(ProviderError):
    """Transient upstream failure (timeouts, 5xx, rate limits)."""
    pass


class FatalProviderError(ProviderError):
    """Upstream rejection that must not be retried."""
    pass


class ProviderNotConfigured(FatalProviderError):
    """Provider credentials or endpoint are missing."""

    def __init__(self, provider: str, missing: Optional[list] = None):
        self.missing = list(missing or [])
        detail = ", ".join(self.missing) if self.missing else "not configured"
        super().__init__(provider, f"provider not configured ({detail})")


class ConcurrencyTimeout(AgentError):
    """Raised when another message for the same session holds the lock too long."""

    def __init__(self, session_id: str, timeout: float):
        super().__init__(f"Session {session_id} is busy (waited {timeout:.1f}s)")
        self.session_id = session_id
        self.timeout = timeout
