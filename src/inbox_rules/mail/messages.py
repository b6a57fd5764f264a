"""Read-only view of an inbound message as seen by the rule engine."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EmailMessage:
    """Represents an inbound message handed over by the mail client.

    Every field is optional: the engine treats a missing value as empty
    rather than failing.
    """

    id: str | None = None
    subject: str | None = None
    senders: list[str] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    text_body: str | None = None
    html_body: str | None = None
    has_attachment: bool | None = None
    size: int | None = None

    @property
    def sender(self) -> str:
        """First sender address, or an empty string."""
        return self.senders[0] if self.senders else ""

    @property
    def body(self) -> str:
        """Plain text body, falling back to the HTML body."""
        return self.text_body or self.html_body or ""

    @property
    def preview(self) -> str:
        """Get a short preview of the message body."""
        content = self.body[:200].replace("\n", " ").strip()
        return f"{content}..." if len(self.body) > 200 else content

    @classmethod
    def from_jmap(cls, data: dict[str, Any]) -> "EmailMessage":
        """
        Build a message view from a JMAP ``Email`` object.

        Body parts may carry their text inline (``value``) or reference
        ``bodyValues`` by ``partId``.

        Args:
            data: Decoded JMAP Email object.

        Returns:
            EmailMessage with whatever fields were present.
        """
        body_values = data.get("bodyValues") or {}

        def first_part(key: str) -> str | None:
            parts = data.get(key) or []
            if not parts:
                return None
            part = parts[0]
            if part.get("value") is not None:
                return part["value"]
            value = body_values.get(part.get("partId"))
            return value.get("value") if value else None

        def addresses(key: str) -> list[str]:
            return [a.get("email", "") for a in data.get(key) or []]

        return cls(
            id=data.get("id"),
            subject=data.get("subject"),
            senders=addresses("from"),
            recipients=addresses("to"),
            text_body=first_part("textBody"),
            html_body=first_part("htmlBody"),
            has_attachment=data.get("hasAttachment"),
            size=data.get("size"),
        )
