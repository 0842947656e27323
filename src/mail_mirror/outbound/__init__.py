"""Outbound mail: SMTP relay, spreadsheet batches and the sent log."""

from .mailer import OutboundMailer
from .relay import Attachment, MailRelay, SmtpRelay

__all__ = ["Attachment", "MailRelay", "OutboundMailer", "SmtpRelay"]
