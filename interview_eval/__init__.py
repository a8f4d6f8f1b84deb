"""Interview evaluation pipeline: LLM agents, evaluation engine, batch runs and interview history."""

__version__ = "1.0.0"
