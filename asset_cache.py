#!/usr/bin/env python3
"""
TeamsChatExporter - Asset Cache
On-disk cache of profile pictures and inline images, keyed by remote identifier
"""

import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional

from graph_client import GraphClient, RemoteFetchError

logger = logging.getLogger(__name__)

# <img ... src="https://graph.microsoft.com/v1.0/chats/.../hostedContents/.../$value" ...>
EMBEDDED_IMAGE_PATTERN = re.compile(
    r'<img\b[^>]*?\bsrc="(https://graph\.microsoft\.com/[^"]*?/hostedContents/[^"]*?/\$value)"[^>]*>',
    re.IGNORECASE,
)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class AssetCache:
    """Download-once cache of binary assets under `<root>/assets`

    A file already on disk is never fetched or rewritten again. Within one
    run every identifier is attempted at most once; failed attempts are
    remembered as missing.
    """

    def __init__(self, client: GraphClient, root: Path):
        self.client = client
        self.root = Path(root)
        self.directory = self.root / "assets"
        self.fetch_count = 0
        self._entries: Dict[str, Optional[Path]] = {}

    def filename_for(self, remote_id: str, suffix: str) -> str:
        """Deterministic file name for a remote identifier"""
        if _SAFE_ID.match(remote_id):
            return f"{remote_id}{suffix}"
        return hashlib.sha1(remote_id.encode("utf-8")).hexdigest() + suffix

    def get_asset(self, remote_id: str, url: Optional[str] = None, suffix: str = ".jpg") -> Optional[Path]:
        """Local path for remote_id, downloading it from url on first use

        Returns None if the asset could not be fetched.
        """
        if remote_id in self._entries:
            return self._entries[remote_id]

        filepath = self.directory / self.filename_for(remote_id, suffix)
        if filepath.exists():
            logger.debug(f"Asset already cached: {filepath.name}")
            self._entries[remote_id] = filepath
            return filepath

        # partial downloads never land at the final path
        partial = filepath.with_name(filepath.name + ".part")
        self.fetch_count += 1
        try:
            self.client.download(url or remote_id, partial)
            os.replace(partial, filepath)
        except RemoteFetchError as e:
            logger.warning(f"Could not fetch asset {remote_id}: {e}")
            if partial.exists():
                partial.unlink()
            self._entries[remote_id] = None
            return None

        self._entries[remote_id] = filepath
        return filepath

    def get_profile_picture(self, user_id: str) -> Optional[Path]:
        if not user_id:
            return None
        return self.get_asset(user_id, self.client.profile_picture_url(user_id), suffix=".jpg")

    def get_embedded_image(self, markup_reference: str) -> Optional[Path]:
        """Cache the image an inline `<img>` tag points at"""
        match = EMBEDDED_IMAGE_PATTERN.search(markup_reference)
        if not match:
            return None
        url = match.group(1)
        return self.get_asset(url, url, suffix=".png")

    def href(self, path: Optional[Path]) -> str:
        """Path usable from an HTML document written to the cache root"""
        if path is None:
            return ""
        return Path(os.path.relpath(path, self.root)).as_posix()
