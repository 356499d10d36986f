"""Core topology, dispatchers, execution pipes and caches for a cycle-level processor core model."""

__version__ = "0.1.0"