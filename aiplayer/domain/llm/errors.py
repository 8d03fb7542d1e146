"""
Error taxonomy for the cognition core.

Failures at the provider boundary never reach the scheduling loop as
exceptions: the planning engine turns them into "no effect this cycle".
"""

from typing import Any, Optional


class CognitionError(Exception):
    """Base class for all cognition core errors"""


class ConfigurationError(CognitionError):
    """Settings cannot produce a working runtime"""


class UnknownProviderError(CognitionError):
    """Provider tag does not map to a known backend"""

    def __init__(self, provider: str):
        super().__init__(f"Unknown LLM provider: {provider!r}")
        self.provider = provider


class ProviderUnavailableError(CognitionError):
    """Bad or missing credentials, unreachable endpoint, or missing model"""

    def __init__(self, provider: str, reason: str = "availability check failed"):
        super().__init__(f"LLM provider {provider} is unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class RequestFailureError(CognitionError):
    """A single completion request failed (non-success status or I/O error)"""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        detail = f"{provider} request failed: {message}"
        if status_code is not None:
            detail = f"{provider} API error {status_code}: {body or 'No error details'}"
        super().__init__(detail)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class ParseFailureError(CognitionError):
    """Structured LLM reply is malformed or incomplete"""

    def __init__(self, message: str, response: Optional[str] = None):
        super().__init__(message)
        self.response = response


class CapacityExceededError(CognitionError):
    """Goal queue is full and the candidate does not outrank its minimum"""

    def __init__(self, goal: Any, lowest_priority: int):
        super().__init__(
            f"Goal queue at capacity; priority {getattr(goal, 'priority', '?')} "
            f"does not exceed lowest priority {lowest_priority}"
        )
        self.goal = goal
        self.lowest_priority = lowest_priority
