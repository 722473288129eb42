"""Outbound message models and their Graph API payloads.

Limits follow the WhatsApp Cloud API: at most 3 reply buttons with titles of
20 characters, and at most 10 rows across all sections of a list.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_LIST_ROWS = 10
MAX_TEXT_BODY = 4096
MAX_INTERACTIVE_BODY = 1024


def _envelope(to: str, message_type: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": message_type,
    }


class TextMessage(BaseModel):
    """Plain text."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    body: Annotated[str, Field(min_length=1, max_length=MAX_TEXT_BODY)]
    preview_url: bool = False

    def to_payload(self, to: str) -> dict[str, Any]:
        """Build the Graph API request body."""
        payload = _envelope(to, "text")
        payload["text"] = {"preview_url": self.preview_url, "body": self.body}
        return payload


class Button(BaseModel):
    """A quick reply button."""

    model_config = ConfigDict(frozen=True)

    id: Annotated[str, Field(min_length=1, max_length=256)]
    title: Annotated[str, Field(min_length=1, max_length=MAX_BUTTON_TITLE)]


class ButtonMessage(BaseModel):
    """Text with up to three reply buttons."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["buttons"] = "buttons"
    body: Annotated[str, Field(min_length=1, max_length=MAX_INTERACTIVE_BODY)]
    buttons: Annotated[tuple[Button, ...], Field(min_length=1, max_length=MAX_BUTTONS)]
    header: Annotated[str | None, Field(max_length=60)] = None
    footer: Annotated[str | None, Field(max_length=60)] = None

    def to_payload(self, to: str) -> dict[str, Any]:
        """Build the Graph API request body."""
        interactive: dict[str, Any] = {
            "type": "button",
            "body": {"text": self.body},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": b.id, "title": b.title}}
                    for b in self.buttons
                ]
            },
        }
        if self.header:
            interactive["header"] = {"type": "text", "text": self.header}
        if self.footer:
            interactive["footer"] = {"text": self.footer}
        payload = _envelope(to, "interactive")
        payload["interactive"] = interactive
        return payload


class ListRow(BaseModel):
    """One selectable row of a list message."""

    model_config = ConfigDict(frozen=True)

    id: Annotated[str, Field(min_length=1, max_length=200)]
    title: Annotated[str, Field(min_length=1, max_length=24)]
    description: Annotated[str | None, Field(max_length=72)] = None


class ListSection(BaseModel):
    """A titled group of rows."""

    model_config = ConfigDict(frozen=True)

    title: Annotated[str | None, Field(max_length=24)] = None
    rows: Annotated[tuple[ListRow, ...], Field(min_length=1)]


class ListMessage(BaseModel):
    """Text with a menu button that opens sections of rows."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    body: Annotated[str, Field(min_length=1, max_length=MAX_INTERACTIVE_BODY)]
    button_text: Annotated[str, Field(min_length=1, max_length=MAX_BUTTON_TITLE)]
    sections: Annotated[tuple[ListSection, ...], Field(min_length=1, max_length=10)]
    header: Annotated[str | None, Field(max_length=60)] = None

    @model_validator(mode="after")
    def validate_row_count(self) -> "ListMessage":
        """Validate the total row count across sections."""
        rows = sum(len(section.rows) for section in self.sections)
        if rows > MAX_LIST_ROWS:
            raise ValueError(f"A list message holds at most {MAX_LIST_ROWS} rows, got {rows}")
        return self

    def to_payload(self, to: str) -> dict[str, Any]:
        """Build the Graph API request body."""
        sections = []
        for section in self.sections:
            rows = []
            for row in section.rows:
                entry = {"id": row.id, "title": row.title}
                if row.description:
                    entry["description"] = row.description
                rows.append(entry)
            rendered: dict[str, Any] = {"rows": rows}
            if section.title:
                rendered["title"] = section.title
            sections.append(rendered)

        interactive: dict[str, Any] = {
            "type": "list",
            "body": {"text": self.body},
            "action": {"button": self.button_text, "sections": sections},
        }
        if self.header:
            interactive["header"] = {"type": "text", "text": self.header}
        payload = _envelope(to, "interactive")
        payload["interactive"] = interactive
        return payload


class LocationRequestMessage(BaseModel):
    """Asks the user to share their location."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["location_request"] = "location_request"
    body: Annotated[str, Field(min_length=1, max_length=MAX_INTERACTIVE_BODY)]

    def to_payload(self, to: str) -> dict[str, Any]:
        """Build the Graph API request body."""
        payload = _envelope(to, "interactive")
        payload["interactive"] = {
            "type": "location_request_message",
            "body": {"text": self.body},
            "action": {"name": "send_location"},
        }
        return payload


OutboundMessage = TextMessage | ButtonMessage | ListMessage | LocationRequestMessage


def read_receipt_payload(message_id: str) -> dict[str, Any]:
    """Build the request body that marks an inbound message as read."""
    return {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
