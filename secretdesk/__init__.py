"""secretdesk: secret catalogue synchronization and batch-mutation engine."""

__version__ = "0.1.0"
