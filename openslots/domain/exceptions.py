"""
Domain-specific exception hierarchy for the openslots engine.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(SlotEngineError):
    """Raised when query parameters are missing or malformed."""


class ProviderNotFoundError(SlotEngineError):
    """Raised when the requested provider does not exist."""

    def __init__(self, provider_id: str):
        super().__init__(f"Provider not found: {provider_id}")
        self.provider_id = provider_id


class DataSourceError(SlotEngineError):
    """Raised when availability data cannot be loaded or parsed."""


class CalendarSyncError(SlotEngineError):
    """Raised when the upstream calendar sync collaborator fails."""
