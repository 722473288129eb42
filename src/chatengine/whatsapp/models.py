"""Inbound webhook payload models.

Only the fields the engine reads are modelled; everything else in the
WhatsApp Business payload is ignored.
"""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

WHATSAPP_OBJECT = "whatsapp_business_account"

# Maximum inbound text length handled per turn
MAX_TEXT_LENGTH = 4096


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Lenient):
    body: str = ""


class ReplyRef(_Lenient):
    id: str
    title: str = ""


class Interactive(_Lenient):
    type: str
    button_reply: ReplyRef | None = None
    list_reply: ReplyRef | None = None


class TemplateButton(_Lenient):
    payload: str | None = None
    text: str = ""


class Location(_Lenient):
    latitude: float
    longitude: float
    name: str | None = None
    address: str | None = None


class Media(_Lenient):
    id: str
    caption: str | None = None
    mime_type: str | None = None


class WebhookMessage(_Lenient):
    """One message object from ``value.messages``."""

    sender: Annotated[str, Field(alias="from")]
    id: str
    type: str
    timestamp: str | None = None
    text: TextBody | None = None
    interactive: Interactive | None = None
    button: TemplateButton | None = None
    location: Location | None = None
    image: Media | None = None
    document: Media | None = None
    audio: Media | None = None
    voice: Media | None = None


class ChangeValue(_Lenient):
    messaging_product: str | None = None
    messages: list[WebhookMessage] = Field(default_factory=list)
    statuses: list[dict] = Field(default_factory=list)


class Change(_Lenient):
    field: str = "messages"
    value: ChangeValue


class Entry(_Lenient):
    id: str | None = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    """Top-level webhook body."""

    object: str
    entry: list[Entry] = Field(default_factory=list)

    def inbound_messages(self) -> list["InboundMessage"]:
        """Flatten every message in the payload into engine input."""
        if self.object != WHATSAPP_OBJECT:
            return []
        return [
            InboundMessage.from_webhook(message)
            for entry in self.entry
            for change in entry.changes
            for message in change.value.messages
        ]


class MessageKind(str, Enum):
    """Normalized inbound message kinds."""

    TEXT = "text"
    INTERACTIVE = "interactive"
    LOCATION = "location"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    UNSUPPORTED = "unsupported"


class InboundMessage(BaseModel):
    """A single user event as the dispatcher consumes it."""

    model_config = ConfigDict(frozen=True)

    sender_id: Annotated[str, Field(min_length=1, max_length=64)]
    message_id: str = ""
    kind: MessageKind = MessageKind.TEXT
    text: Annotated[str, Field(max_length=MAX_TEXT_LENGTH)] = ""
    reply_id: str | None = None
    reply_title: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    location_address: str | None = None
    media_id: str | None = None
    caption: str | None = None
    mime_type: str | None = None

    @classmethod
    def text_message(cls, sender_id: str, text: str, message_id: str = "") -> "InboundMessage":
        """Build a plain text message."""
        return cls(sender_id=sender_id, message_id=message_id, text=text[:MAX_TEXT_LENGTH])

    @classmethod
    def from_webhook(cls, message: WebhookMessage) -> "InboundMessage":
        """Normalize a webhook message."""
        base = {"sender_id": message.sender, "message_id": message.id}

        if message.type == "text" and message.text is not None:
            return cls(**base, text=message.text.body[:MAX_TEXT_LENGTH])

        if message.type == "interactive" and message.interactive is not None:
            reply = message.interactive.button_reply or message.interactive.list_reply
            if reply is not None:
                return cls(
                    **base,
                    kind=MessageKind.INTERACTIVE,
                    text=reply.title,
                    reply_id=reply.id,
                    reply_title=reply.title,
                )

        if message.type == "button" and message.button is not None:
            return cls(
                **base,
                kind=MessageKind.INTERACTIVE,
                text=message.button.text,
                reply_id=message.button.payload or message.button.text,
                reply_title=message.button.text,
            )

        if message.type == "location" and message.location is not None:
            location = message.location
            return cls(
                **base,
                kind=MessageKind.LOCATION,
                latitude=location.latitude,
                longitude=location.longitude,
                location_name=location.name,
                location_address=location.address,
            )

        media_kinds = {
            "image": (MessageKind.IMAGE, message.image),
            "document": (MessageKind.DOCUMENT, message.document),
            "audio": (MessageKind.AUDIO, message.audio),
            "voice": (MessageKind.AUDIO, message.voice),
        }
        if message.type in media_kinds:
            kind, media = media_kinds[message.type]
            if media is not None:
                return cls(
                    **base,
                    kind=kind,
                    media_id=media.id,
                    caption=media.caption,
                    mime_type=media.mime_type,
                    text=(media.caption or "")[:MAX_TEXT_LENGTH],
                )

        return cls(**base, kind=MessageKind.UNSUPPORTED)
