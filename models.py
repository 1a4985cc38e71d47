#!/usr/bin/env python3
"""
TeamsChatExporter - Data Model
Read-only views over the Microsoft Graph chat resources used by the exporter
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Any, Optional


class ConversationKind(Enum):
    """Chat kinds reported by Graph in `chatType`"""

    ONE_ON_ONE = "oneOnOne"
    GROUP = "group"
    MEETING = "meeting"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConversationKind":
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.OTHER


class MessageKind(Enum):
    """Closed set of message variants the renderer knows about"""

    CONTENT = "message"
    SYSTEM_EVENT = "systemEventMessage"
    UNHANDLED = "unhandled"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MessageKind":
        if value == cls.CONTENT.value:
            return cls.CONTENT
        if value == cls.SYSTEM_EVENT.value:
            return cls.SYSTEM_EVENT
        return cls.UNHANDLED


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Graph ISO-8601 timestamp, None when absent or malformed"""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        # Graph emits 7 fractional digits, older interpreters only accept 6
        head, _, tail = value.rstrip("Z").partition(".")
        try:
            return datetime.fromisoformat(f"{head}.{tail[:6].ljust(6, '0')}+00:00")
        except ValueError:
            return None


@dataclass
class Participant:
    user_id: str
    display_name: str
    email: Optional[str] = None
    picture: Optional[str] = None

    @classmethod
    def from_graph(cls, member: Dict[str, Any]) -> "Participant":
        """Build from a chat member (`aadUserConversationMember`) or a `/me` user"""
        return cls(
            user_id=member.get("userId") or member.get("id") or "",
            display_name=member.get("displayName") or "",
            email=member.get("email") or member.get("mail") or member.get("userPrincipalName"),
        )


@dataclass
class Conversation:
    id: str
    kind: ConversationKind
    topic: Optional[str] = None
    participants: List[Participant] = field(default_factory=list)

    @classmethod
    def from_graph(cls, chat: Dict[str, Any]) -> "Conversation":
        return cls(
            id=chat.get("id", ""),
            kind=ConversationKind.parse(chat.get("chatType")),
            topic=chat.get("topic") or None,
        )


@dataclass
class Attachment:
    id: str
    name: str
    content_type: str
    content_url: Optional[str] = None

    @classmethod
    def from_graph(cls, attachment: Dict[str, Any]) -> "Attachment":
        return cls(
            id=attachment.get("id") or "",
            name=attachment.get("name") or attachment.get("contentUrl") or "attachment",
            content_type=attachment.get("contentType") or "",
            content_url=attachment.get("contentUrl"),
        )


@dataclass
class Message:
    """A single chat message as returned by `/chats/{id}/messages`

    `raw_kind` keeps the untouched `messageType` so unhandled variants can
    be reported by name.
    """

    id: str
    conversation_id: str
    created: Optional[datetime]
    kind: MessageKind
    raw_kind: str = ""
    sender: Optional[Participant] = None
    body: str = ""
    body_type: str = "html"
    edited: Optional[datetime] = None
    deleted: Optional[datetime] = None
    importance: str = "normal"
    attachments: List[Attachment] = field(default_factory=list)
    event_detail: Optional[Dict[str, Any]] = None

    @classmethod
    def from_graph(cls, message: Dict[str, Any], conversation_id: str) -> "Message":
        raw_kind = message.get("messageType") or ""
        kind = MessageKind.parse(raw_kind)

        sender = None
        origin = message.get("from") or {}
        user = origin.get("user") if isinstance(origin, dict) else None
        if kind is not MessageKind.SYSTEM_EVENT and isinstance(user, dict):
            sender = Participant(
                user_id=user.get("id") or "",
                display_name=user.get("displayName") or "",
            )
        elif kind is not MessageKind.SYSTEM_EVENT and isinstance(origin, dict) and origin.get("application"):
            # bots and connectors have no user profile picture
            sender = Participant(user_id="", display_name=origin["application"].get("displayName") or "")

        body = message.get("body") or {}
        return cls(
            id=message.get("id", ""),
            conversation_id=message.get("chatId") or conversation_id,
            created=parse_timestamp(message.get("createdDateTime")),
            kind=kind,
            raw_kind=raw_kind,
            sender=sender,
            body=body.get("content") or "",
            body_type=body.get("contentType") or "html",
            edited=parse_timestamp(message.get("lastEditedDateTime")),
            deleted=parse_timestamp(message.get("deletedDateTime")),
            importance=message.get("importance") or "normal",
            attachments=[Attachment.from_graph(a) for a in message.get("attachments") or []],
            event_detail=message.get("eventDetail"),
        )
