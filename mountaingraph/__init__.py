"""Document-to-knowledge-graph extraction pipeline."""

__version__ = "0.1.0"
