#!/usr/bin/env python3
"""
TeamsChatExporter - HTML Archive Export
Export Microsoft Teams chats to static HTML files, one per conversation
"""

import hashlib
import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from asset_cache import AssetCache
from graph_client import GraphClient, RemoteFetchError
from message_renderer import MessageRenderer, Templates
from models import Conversation, ConversationKind, Participant
from name_resolver import resolve_name

MAX_NAME_LENGTH = 64
HASH_LENGTH = 8


@dataclass
class ExportSummary:
    written: List[Path] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    elapsed: float = 0.0


def sanitize_filename(name: str) -> str:
    """Filesystem-safe version of a conversation name, at most 64 characters"""
    name = re.sub(r'[<>:"/\\|?*\x00-\x1f\x7f]', "", name)
    name = name.strip().rstrip(".")
    return name[:MAX_NAME_LENGTH].strip() or "untitled"


def conversation_hash(conversation_id: str) -> str:
    return hashlib.sha256(conversation_id.encode("utf-8")).hexdigest()[:HASH_LENGTH]


class TeamsHtmlExporter:
    """Export Teams chats as self-contained HTML documents"""

    def __init__(
        self,
        client: GraphClient,
        output_dir: str,
        only_names: Optional[Iterable[str]] = None,
        skip_ids: Optional[Iterable[str]] = None,
        avoid_overwrite: bool = False,
        templates: Optional[Templates] = None,
        current_user: Optional[Participant] = None,
    ):
        """Initialize exporter

        Args:
            client: Graph API client
            output_dir: Directory receiving the HTML files and the assets/ cache
            only_names: If given, export only conversations whose resolved name is listed
            skip_ids: Conversation IDs never exported
            avoid_overwrite: Add " (n)" suffixes instead of replacing existing files
            templates: Conversation/message templates (the shipped ones by default)
            current_user: Authenticated user, fetched from /me when omitted
        """
        self.client = client
        self.output_dir = Path(output_dir)
        self.only_names = set(only_names) if only_names else None
        self.skip_ids = set(skip_ids or ())
        self.avoid_overwrite = avoid_overwrite
        self.templates = templates or Templates.load()
        self.current_user = current_user
        self.cache = AssetCache(client, self.output_dir)
        self.logger = logging.getLogger(__name__)

    def log(self, message: str, level: str = "INFO"):
        self.logger.log(logging.getLevelName(level), message)

    def resolve_output_path(self, name: str, conversation: Conversation) -> Path:
        """Collision-safe output path for a resolved conversation name"""
        base = sanitize_filename(name)
        if conversation.kind is not ConversationKind.ONE_ON_ONE:
            base = f"{base} ({conversation_hash(conversation.id)})"

        path = self.output_dir / f"{base}.html"
        if not self.avoid_overwrite:
            return path

        n = 1
        while path.exists():
            path = self.output_dir / f"{base} ({n}).html"
            n += 1
        return path

    def write_document(self, path: Path, document: str):
        """Write a finished document; readers never see a partial file"""
        path.parent.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(path.name + ".part")
        with open(partial, "w", encoding="utf-8") as f:
            f.write(document)
        os.replace(partial, path)

    def export_conversation(self, conversation: Conversation, renderer: MessageRenderer) -> Optional[Path]:
        """Export one conversation, returning the written path or None if skipped"""
        if conversation.id in self.skip_ids:
            self.log(f"Skipping conversation {conversation.id}: in skip list")
            return None

        members = list(self.client.list_members(conversation))
        conversation.participants = members
        name = resolve_name(conversation, members, self.current_user)

        if self.only_names is not None and name not in self.only_names:
            self.log(f"Skipping '{name}': not in the list of conversations to export")
            return None
        if not name:
            self.log(f"Skipping conversation {conversation.id}: no resolvable name")
            return None

        messages = list(self.client.list_messages(conversation))
        if not messages:
            self.log(f"Skipping '{name}': no messages")
            return None

        for member in members:
            member.picture = self.cache.href(self.cache.get_profile_picture(member.user_id)) or None

        markup = renderer.render_all(messages)
        if not markup:
            self.log(f"Skipping '{name}': no renderable messages")
            return None
        document = renderer.render_document(name, markup)

        path = self.resolve_output_path(name, conversation)
        self.write_document(path, document)
        self.log(f"Exported '{name}' ({len(messages)} messages) to {path.name}")
        return path

    def export_all(self) -> ExportSummary:
        """Export every conversation of the authenticated user"""
        started = time.monotonic()
        summary = ExportSummary()

        self.log("=" * 60)
        self.log(f"Starting export to {self.output_dir}")
        self.log("=" * 60)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        if self.current_user is None:
            self.current_user = self.client.get_current_user()
            self.log(f"Authenticated as {self.current_user.display_name}")

        renderer = MessageRenderer(self.templates, self.cache, self.current_user)

        for conversation in self.client.list_conversations():
            try:
                path = self.export_conversation(conversation, renderer)
            except RemoteFetchError as e:
                self.log(f"Error exporting conversation {conversation.id}: {e}", "ERROR")
                summary.failed.append(conversation.id)
                continue
            if path is None:
                summary.skipped.append(conversation.id)
            else:
                summary.written.append(path)

        summary.elapsed = time.monotonic() - started
        self.log("=" * 60)
        self.log(
            f"Export complete! {len(summary.written)} written, {len(summary.skipped)} skipped, "
            f"{len(summary.failed)} failed in {summary.elapsed:.1f}s"
        )
        self.log(f"Output directory: {self.output_dir}")
        self.log("=" * 60)
        return summary
