"""
Domain exceptions.

Expected per-page failures (page not found, generation exhausted) are not
exceptions: components return ``None`` or a sentinel and the pipeline records
a failure reason. These classes cover programming errors and infrastructure
faults that must propagate.
"""


class WikiFAQError(Exception):
    """Base exception for the FAQ pipeline."""
    pass


class InvalidTransitionError(WikiFAQError):
    """Queue entry asked to move along an edge the state machine does not have."""

    def __init__(self, entry_id: int, current: str, target: str):
        self.entry_id = entry_id
        self.current = current
        self.target = target
        super().__init__(
            f"Queue entry {entry_id} cannot move from '{current}' to '{target}'"
        )


class QueueEntryNotFoundError(WikiFAQError):
    """Referenced queue entry does not exist."""
    pass


class VectorStoreError(WikiFAQError):
    """Raised when the vector backend rejects or cannot serve a request."""
    pass


class ConfigurationError(WikiFAQError):
    """Required configuration for a component is missing."""
    pass
