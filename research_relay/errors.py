from __future__ import annotations


class ResearchRelayError(Exception):
    """Base class for errors raised by research_relay."""


class SourceError(ResearchRelayError):
    """A search provider could not produce a response."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class GenerationError(ResearchRelayError):
    """The text generation capability failed (auth, provider, timeout)."""


class EmbeddingError(ResearchRelayError):
    """The embedding capability failed or is not configured."""


class IndexCorruption(ResearchRelayError):
    """The persisted vector index could not be parsed."""


class ReportNotFound(ResearchRelayError):
    """No stored report matches the requested name."""
