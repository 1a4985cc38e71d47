#!/usr/bin/env python3
"""
TeamsChatExporter - Name Resolver
Human-readable conversation names derived from topic and members
"""

from typing import Iterable, Optional

from models import Conversation, ConversationKind, Participant

NAME_SEPARATOR = ", "


def is_current_user(participant: Participant, current_user: Optional[Participant]) -> bool:
    """Match by user id, falling back to display name when an id is missing"""
    if current_user is None:
        return False
    if participant.user_id and current_user.user_id:
        return participant.user_id == current_user.user_id
    return participant.display_name == current_user.display_name


def resolve_name(conversation: Conversation, members: Iterable[Participant],
                 current_user: Optional[Participant]) -> str:
    """Display name for a conversation, possibly empty

    Not unique: filenames are disambiguated by the exporter.
    """
    if conversation.topic:
        return conversation.topic.strip()

    others = [
        m.display_name for m in members
        if m.display_name and not is_current_user(m, current_user)
    ]

    if conversation.kind is ConversationKind.ONE_ON_ONE:
        return others[0] if others else ""

    return NAME_SEPARATOR.join(others)
