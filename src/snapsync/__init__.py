"""snapsync: multi-replica snapshot sync with deterministic conflict resolution."""

__version__ = "0.4.0"
