"""
Inbound WhatsApp payload parsing.

Cloud API webhooks wrap each event as ``entry[].changes[].value``. A value
carries either ``messages`` (something the customer sent) or ``statuses``
(delivery/read receipts for something we sent). Only the first message of a
change is used; Meta delivers one message per call in practice.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, ValidationError


class PayloadError(Exception):
    """The webhook body is not a WhatsApp Business Account envelope."""


# --- Envelope schemas ---

class TextBody(BaseModel):
    body: str = ""


class InteractiveReply(BaseModel):
    id: str | None = None
    title: str = ""


class Interactive(BaseModel):
    type: str | None = None
    button_reply: InteractiveReply | None = None
    list_reply: InteractiveReply | None = None


class MessageObject(BaseModel):
    from_: str = Field(..., alias="from")
    id: str
    timestamp: str | None = None
    type: str = "unknown"
    text: TextBody | None = None
    interactive: Interactive | None = None

    class Config:
        populate_by_name = True
        extra = "allow"  # audio, image, location...


class Profile(BaseModel):
    name: str | None = None


class ContactObject(BaseModel):
    wa_id: str | None = None
    profile: Profile | None = None


class ChangeValue(BaseModel):
    messages: list[MessageObject] = []
    statuses: list[dict] = []
    contacts: list[ContactObject] = []

    class Config:
        extra = "allow"


class Change(BaseModel):
    value: ChangeValue


class Entry(BaseModel):
    changes: list[Change] = Field(..., min_length=1)


class WebhookPayload(BaseModel):
    object: str | None = None
    entry: list[Entry] = Field(..., min_length=1)


# --- Normalised message ---

class InboundMessage(BaseModel):
    message_id: str
    sender: str
    type: str
    text: str
    timestamp: datetime | None = None
    profile_name: str | None = None

    class Config:
        frozen = True

    @property
    def is_text(self) -> bool:
        return self.type == "text" and bool(self.text)


def parse_payload(payload) -> WebhookPayload:
    """Validate a decoded webhook body. Raises PayloadError on any shape mismatch."""
    if isinstance(payload, WebhookPayload):
        return payload
    try:
        return WebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(f"Invalid payload structure: {e.error_count()} error(s)") from e


def is_status_update(payload) -> bool:
    """True for receipts (sent/delivered/read) that carry no customer message."""
    value = parse_payload(payload).entry[0].changes[0].value
    return bool(value.statuses) and not value.messages


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def extract_message(payload) -> InboundMessage | None:
    """Pull the customer message out of a webhook payload.

    Returns None when the payload holds no message. Raises PayloadError when
    the envelope itself is malformed.
    """
    value = parse_payload(payload).entry[0].changes[0].value
    if not value.messages:
        return None

    message = value.messages[0]
    message_type = message.type
    text = ""
    if message_type == "text" and message.text is not None:
        text = message.text.body.strip()
    elif message_type == "interactive" and message.interactive is not None:
        # Button and list replies carry their label as the user's choice.
        reply = message.interactive.button_reply or message.interactive.list_reply
        text = reply.title.strip() if reply else ""
        message_type = "text" if text else message_type

    profile_name = None
    if value.contacts and value.contacts[0].profile:
        profile_name = value.contacts[0].profile.name

    return InboundMessage(
        message_id=message.id,
        sender=message.from_,
        type=message_type,
        text=text,
        timestamp=_parse_timestamp(message.timestamp),
        profile_name=profile_name,
    )
