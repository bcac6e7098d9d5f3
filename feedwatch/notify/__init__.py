"""Notification rendering and delivery."""

from .notifier import DeliveryReport, Notifier, Transport
from .render import MessageRenderer
from .transport import SMTPTransport

__all__ = ["DeliveryReport", "MessageRenderer", "Notifier", "SMTPTransport", "Transport"]
