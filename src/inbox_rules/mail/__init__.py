"""Inbound message views."""

from inbox_rules.mail.messages import EmailMessage

__all__ = ["EmailMessage"]
