#!/usr/bin/env python3
"""
TeamsChatExporter - Message Renderer
Fill the message and conversation templates from Graph messages
"""

import html
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Any, Optional

from asset_cache import AssetCache, EMBEDDED_IMAGE_PATTERN
from models import Message, MessageKind, Participant

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
SYSTEM_SENDER = "System"
TIME_FORMAT = "%Y-%m-%d %H:%M"

MESSAGE_PLACEHOLDERS = (
    "attachments", "body", "time", "deleted", "edited",
    "picture", "is_me", "sender", "importance",
)
CONVERSATION_PLACEHOLDERS = ("name", "style", "messages")

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def fill(template: str, values: Dict[str, str]) -> str:
    """Substitute `{{key}}` tokens in one pass; unknown tokens are left alone"""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def format_time(value: Optional[datetime]) -> str:
    return value.strftime(TIME_FORMAT) if value else ""


class Templates:
    """The conversation template, message template and stylesheet"""

    def __init__(self, conversation: str, message: str, style: str):
        self.conversation = conversation
        self.message = message
        self.style = style

    @classmethod
    def load(cls, directory: Optional[Path] = None) -> "Templates":
        directory = Path(directory) if directory else DEFAULT_TEMPLATE_DIR
        return cls(
            conversation=(directory / "conversation.html").read_text(encoding="utf-8"),
            message=(directory / "message.html").read_text(encoding="utf-8"),
            style=(directory / "style.css").read_text(encoding="utf-8"),
        )


def _user_name(identity: Optional[Dict[str, Any]]) -> str:
    """Display name of a Graph identitySet (`{"user": {...}}`)"""
    if not isinstance(identity, dict):
        return ""
    for key in ("user", "application", "device"):
        entry = identity.get(key)
        if isinstance(entry, dict) and entry.get("displayName"):
            return entry["displayName"]
    return ""


def _member_names(members: Iterable[Dict[str, Any]]) -> str:
    names = [m.get("displayName") for m in members if isinstance(m, dict) and m.get("displayName")]
    if names:
        return ", ".join(names)
    return "members"


def _humanize_event_type(odata_type: str) -> str:
    """`#microsoft.graph.teamsAppInstalledEventMessageDetail` -> `Teams app installed`"""
    name = odata_type.rsplit(".", 1)[-1]
    name = re.sub(r"EventMessageDetail$", "", name)
    words = re.sub(r"(?<!^)(?=[A-Z])", " ", name).lower().strip()
    return words[:1].upper() + words[1:] if words else "System event"


def describe_event(detail: Optional[Dict[str, Any]]) -> str:
    """Plain-text description of a system event's `eventDetail`"""
    if not detail:
        return "System event"

    odata_type = detail.get("@odata.type", "")
    event = odata_type.rsplit(".", 1)[-1]
    initiator = _user_name(detail.get("initiator")) or "Someone"

    if event == "membersAddedEventMessageDetail":
        return f"{initiator} added {_member_names(detail.get('members', []))} to the chat"
    if event == "membersDeletedEventMessageDetail":
        return f"{initiator} removed {_member_names(detail.get('members', []))} from the chat"
    if event == "membersJoinedEventMessageDetail":
        return f"{_member_names(detail.get('members', []))} joined the chat"
    if event == "membersLeftEventMessageDetail":
        return f"{_member_names(detail.get('members', []))} left the chat"
    if event == "chatRenamedEventMessageDetail":
        return f"{initiator} renamed the chat to \"{detail.get('chatDisplayName') or ''}\""
    if event == "callStartedEventMessageDetail":
        return f"{initiator} started a call"
    if event == "callEndedEventMessageDetail":
        duration = detail.get("callDuration")
        return f"Call ended ({duration})" if duration else "Call ended"
    if event == "messagePinnedEventMessageDetail":
        return f"{initiator} pinned a message"
    if event == "messageUnpinnedEventMessageDetail":
        return f"{initiator} unpinned a message"

    return _humanize_event_type(odata_type) if odata_type else "System event"


class MessageRenderer:
    """Turn messages into populated message-template fragments"""

    def __init__(self, templates: Templates, cache: AssetCache, current_user: Optional[Participant]):
        self.templates = templates
        self.cache = cache
        self.current_user = current_user

    def render(self, message: Message) -> Optional[str]:
        """Fragment for one message, None for kinds that are not rendered"""
        if message.kind is MessageKind.CONTENT:
            return fill(self.templates.message, self._content_fields(message))
        if message.kind is MessageKind.SYSTEM_EVENT:
            return fill(self.templates.message, self._system_fields(message))
        if message.kind is MessageKind.UNHANDLED:
            logger.warning(f"Skipping message {message.id}: unhandled message type '{message.raw_kind}'")
            return None
        raise AssertionError(f"unreachable message kind {message.kind}")

    def render_all(self, messages: Iterable[Message]) -> str:
        """Concatenate fragments in receipt order"""
        fragments = []
        for message in messages:
            fragment = self.render(message)
            if fragment is not None:
                fragments.append(fragment)
        return "".join(fragments)

    def render_document(self, name: str, messages_markup: str) -> str:
        return fill(self.templates.conversation, {
            "name": html.escape(name),
            "style": self.templates.style,
            "messages": messages_markup,
        })

    def _content_fields(self, message: Message) -> Dict[str, str]:
        sender = message.sender
        sender_name = sender.display_name if sender else ""
        picture = self.cache.get_profile_picture(sender.user_id) if sender else None
        is_me = bool(
            self.current_user and sender_name
            and sender_name == self.current_user.display_name
        )
        return {
            "attachments": self.render_attachments(message),
            "body": "" if message.deleted else self.render_body(message),
            "time": format_time(message.created),
            "deleted": _flag(message.deleted is not None),
            "edited": _flag(message.edited is not None),
            "picture": self.cache.href(picture),
            "is_me": _flag(is_me),
            "sender": html.escape(sender_name),
            "importance": html.escape(message.importance),
        }

    def _system_fields(self, message: Message) -> Dict[str, str]:
        return {
            "attachments": "",
            "body": html.escape(describe_event(message.event_detail)),
            "time": format_time(message.created),
            "deleted": _flag(False),
            "edited": _flag(False),
            "picture": "",
            "is_me": _flag(False),
            "sender": SYSTEM_SENDER,
            "importance": html.escape(message.importance),
        }

    def render_body(self, message: Message) -> str:
        """Message markup with inline Graph images pointed at cached copies"""
        if message.body_type == "text":
            return html.escape(message.body)
        return EMBEDDED_IMAGE_PATTERN.sub(self._replace_image, message.body)

    def _replace_image(self, match: "re.Match") -> str:
        tag = match.group(0)
        path = self.cache.get_embedded_image(tag)
        if path is None:
            return tag
        return tag.replace(match.group(1), self.cache.href(path), 1)

    def render_attachments(self, message: Message) -> str:
        items = []
        for attachment in message.attachments:
            # inline message references and cards carry no downloadable content
            if not attachment.content_url:
                continue
            items.append(
                f'<li class="attachment"><a href="{html.escape(attachment.content_url, quote=True)}">'
                f"{html.escape(attachment.name)}</a></li>"
            )
        if not items:
            return ""
        return '<ul class="attachments">' + "".join(items) + "</ul>"
