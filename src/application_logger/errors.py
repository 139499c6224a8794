class TrackerError(Exception):
    """Base class for errors raised by the application logger."""


class ConfigurationError(TrackerError):
    """A required label, worksheet or setting is missing. Aborts the whole run."""


class ClassificationFailure(TrackerError):
    """The AI collaborator could not produce a usable answer."""


class RateLimited(ClassificationFailure):
    """HTTP 429 from the AI collaborator; retried before falling through."""


class StoreWriteFailure(TrackerError):
    """A batched row write was rejected by the store."""
