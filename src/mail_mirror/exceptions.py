"""Custom exceptions for Mail Mirror."""


class MailMirrorError(Exception):
    """Base exception for all Mail Mirror errors."""

    retryable: bool = False


class ConfigurationError(MailMirrorError):
    """Exception raised for configuration related errors."""


class AuthenticationError(MailMirrorError):
    """Exception raised for authentication failures."""


class GmailAPIError(MailMirrorError):
    """Exception raised for Gmail API related errors."""


class TransientProviderError(GmailAPIError):
    """Network failure, rate limit or 5xx from the mailbox provider.

    The whole synchronization pass is retried from the last durable cursor.
    """

    retryable = True


class CursorExpiredError(GmailAPIError):
    """The provider no longer serves history from the stored cursor."""


class MessageNotFoundError(GmailAPIError):
    """A message referenced by the change feed no longer exists."""


class MalformedMessageError(MailMirrorError):
    """Message metadata is missing or unreadable.

    Recovered locally with placeholder fields; never fails a pass.
    """


class StoreWriteError(MailMirrorError):
    """A store statement failed for a reason other than the idempotent key conflict."""

    retryable = True


class CursorRegressionError(StoreWriteError):
    """An attempt was made to move the change-feed cursor backwards."""

    retryable = False


class BootstrapRequiredError(MailMirrorError):
    """No cursor exists yet for the mailbox; the bootstrap path must run."""


class SyncTimeoutError(TransientProviderError):
    """A synchronization pass did not finish within its time budget."""


class UnknownWatermarkError(MailMirrorError):
    """The delta reader was given a watermark that is not in the unread set."""


class RelayError(MailMirrorError):
    """The outbound mail relay rejected or failed to deliver a message."""


class SpreadsheetError(MailMirrorError):
    """An uploaded spreadsheet cannot be used as a send batch."""
