"""WhatsApp channel: webhook models, outbound messages and Graph API client."""

from chatengine.whatsapp.client import LoggingMessenger, WhatsAppClient, WhatsAppClientError
from chatengine.whatsapp.messages import (
    Button,
    ButtonMessage,
    ListMessage,
    ListRow,
    ListSection,
    LocationRequestMessage,
    OutboundMessage,
    TextMessage,
)
from chatengine.whatsapp.models import InboundMessage, MessageKind, WebhookPayload

__all__ = [
    "WhatsAppClient",
    "WhatsAppClientError",
    "LoggingMessenger",
    "OutboundMessage",
    "TextMessage",
    "Button",
    "ButtonMessage",
    "ListMessage",
    "ListRow",
    "ListSection",
    "LocationRequestMessage",
    "InboundMessage",
    "MessageKind",
    "WebhookPayload",
]
