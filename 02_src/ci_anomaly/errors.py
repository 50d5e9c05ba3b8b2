"""Exception taxonomy for the ingestion pipeline."""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(PipelineError):
    """Raw message is malformed or cannot be classified."""


class PersistenceError(PipelineError):
    """Conversation store is unavailable or rejected a write/read."""


class AnalysisError(PipelineError):
    """AI call failed or returned a structurally invalid response."""


class ConfigurationError(PipelineError):
    """A required startup resource or setting is missing or invalid."""
