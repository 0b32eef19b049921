"""
Unit tests for ConsoleNotificationSender adapter.

Tests verify the console sender implements NotificationClient protocol
and logs activation notices in the correct format.
"""

import logging

import pytest

from src.adapters.notification.console import ConsoleNotificationSender


class TestConsoleNotificationSenderProtocol:
    """Tests for NotificationClient protocol compliance."""

    def test_implements_notification_client_protocol(self) -> None:
        """ConsoleNotificationSender implements NotificationClient protocol."""
        from src.domain.ports import NotificationClient

        sender = ConsoleNotificationSender()
        assert callable(sender.get_user_profile)
        assert callable(sender.send_activation_notice)

        def accepts_notification_client(s: NotificationClient) -> None:
            pass

        accepts_notification_client(sender)

    def test_no_explicit_inheritance(self) -> None:
        """ConsoleNotificationSender uses structural subtyping, not inheritance."""
        bases = ConsoleNotificationSender.__bases__
        assert bases == (object,), f"Expected only object as base, got {bases}"


class TestConsoleNotificationSender:
    """Tests for profile lookup and notice logging."""

    def test_profile_is_stub(self) -> None:
        """Every user resolves to a profile so the notice is always logged."""
        profile = ConsoleNotificationSender().get_user_profile("user-1")
        assert profile["userId"] == "user-1"

    def test_notice_logged_at_info(self, caplog: pytest.LogCaptureFixture) -> None:
        sender = ConsoleNotificationSender()

        with caplog.at_level(logging.INFO):
            sender.send_activation_notice({"userId": "user-1"})

        assert len(caplog.records) == 1
        assert caplog.records[0].levelno == logging.INFO
        assert caplog.records[0].getMessage() == "[ACTIVATION NOTICE] User: user-1"
