"""Gmail provider access and payload parsing."""

from .client import GmailClient

__all__ = ["GmailClient"]
