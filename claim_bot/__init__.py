"""claim-bot: issue-assignment lifecycle reconciler."""

__version__ = "0.1.0"
