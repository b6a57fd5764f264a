"""Pytest fixtures for inbox-rules tests."""

import itertools

import pytest

from inbox_rules.mail.messages import EmailMessage
from inbox_rules.rules.conditions import ConditionField, ConditionOperator, FilterCondition
from inbox_rules.rules.filters import EmailFilter, FilterAction, FilterActionType
from inbox_rules.rules.manager import RuleSetManager


class FakeClock:
    """Millisecond clock that advances by one on every read."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self._ticks = itertools.count(start)

    def __call__(self) -> int:
        return next(self._ticks)


@pytest.fixture
def clock() -> FakeClock:
    """A fresh fake clock."""
    return FakeClock()


@pytest.fixture
def manager(clock: FakeClock) -> RuleSetManager:
    """An empty rule set with a deterministic clock."""
    return RuleSetManager(clock=clock)


@pytest.fixture
def sample_email() -> EmailMessage:
    """Create a sample email for testing."""
    return EmailMessage(
        id="M12345",
        subject="Test Subject",
        senders=["sender@example.com"],
        recipients=["recipient@example.com"],
        text_body="This is a test email body.",
        has_attachment=False,
        size=2048,
    )


@pytest.fixture
def newsletter_email() -> EmailMessage:
    """Create a newsletter-like email for testing."""
    return EmailMessage(
        id="M12346",
        subject="Weekly Newsletter - December Edition",
        senders=["newsletter@company.com"],
        recipients=["user@example.com", "team@example.com"],
        html_body="<p>Check out our latest updates! Click here to unsubscribe.</p>",
        has_attachment=False,
        size=48_000,
    )


@pytest.fixture
def invoice_email() -> EmailMessage:
    """Create an invoice email with an attachment."""
    return EmailMessage(
        id="M12347",
        subject="Your Invoice #42",
        senders=["billing@vendor.com"],
        recipients=["user@example.com"],
        text_body="Please find your invoice attached.",
        has_attachment=True,
        size=1_250_000,
    )


@pytest.fixture
def invoice_filter() -> EmailFilter:
    """Label invoices with attachments as Finance and mark them read."""
    return EmailFilter(
        name="Invoices",
        enabled=True,
        match_all=True,
        conditions=[
            FilterCondition(
                field=ConditionField.SUBJECT,
                operator=ConditionOperator.CONTAINS,
                value="invoice",
            ),
            FilterCondition(
                field=ConditionField.HAS_ATTACHMENT,
                operator=ConditionOperator.IS,
                value="true",
            ),
        ],
        actions=[
            FilterAction(type=FilterActionType.ADD_LABEL, value="Finance"),
            FilterAction(type=FilterActionType.MARK_AS_READ),
        ],
    )
