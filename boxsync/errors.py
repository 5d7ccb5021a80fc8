"""Error types shared across the dispatcher pipeline."""
from typing import Optional


class InvalidPayloadError(Exception):
    """Stored event payload is structurally unusable. Never retried."""


class ReferenceDataError(Exception):
    """Reference tables are empty, so no box can be assigned."""


class WriteBackError(Exception):
    """Error returned by, or while reaching, the ShipHero mutation API.

    Attributes:
        code: Error code reported by the API, or None for transport errors
        retryable: Whether another attempt may succeed
    """

    def __init__(self, message: str, code: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.code = code
        self.retryable = retryable

    def __str__(self) -> str:
        message = super().__str__()
        if self.code:
            return f"[{self.code}] {message}"
        return message
