"""Multi-source research retrieval and report pipeline."""

__version__ = "0.1.0"
