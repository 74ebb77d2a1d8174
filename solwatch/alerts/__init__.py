"""Outbound notification delivery (Telegram)."""

from solwatch.alerts.telegram import TelegramNotifier, format_activity_message

__all__ = ["TelegramNotifier", "format_activity_message"]
