#!/usr/bin/env python3
"""
TeamsChatExporter - Graph API Client
Paginated, authenticated access to Microsoft Teams chats via Microsoft Graph
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterator, Any, Optional

import msal
import requests

from models import Conversation, Message, Participant

logger = logging.getLogger(__name__)

GRAPH_API = "https://graph.microsoft.com/v1.0"
SCOPES = ["Chat.Read", "User.Read", "User.ReadBasic.All"]

TokenProvider = Callable[[], str]


class ExportError(Exception):
    """Base class for exporter errors"""


class AuthenticationError(ExportError):
    """Token acquisition failed"""


class RemoteFetchError(ExportError):
    """Graph answered with a non-success status, or the request never completed

    Attributes:
        status: HTTP status code, None for transport failures
        conversation_id: Conversation the request was made for, if any
        url: Requested URL
    """

    def __init__(self, status: Optional[int], url: str, conversation_id: Optional[str] = None, reason: str = ""):
        self.status = status
        self.url = url
        self.conversation_id = conversation_id
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else (reason or "request failed")
        where = f" (conversation {conversation_id})" if conversation_id else ""
        super().__init__(f"{detail} fetching {url}{where}")


class MsalTokenProvider:
    """Device-code token provider backed by a serialized MSAL cache

    Calling the instance returns a bearer token; cached refresh tokens are
    used silently, so only the first call of a fresh cache prompts the user.
    """

    def __init__(self, client_id: str, tenant_id: str, cache_path: str = ".token_cache.bin"):
        self.cache_path = Path(cache_path)
        self.cache = msal.SerializableTokenCache()
        if self.cache_path.exists():
            self.cache.deserialize(self.cache_path.read_text(encoding="utf-8"))
        self.app = msal.PublicClientApplication(
            client_id=client_id,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
            token_cache=self.cache,
        )

    def __call__(self) -> str:
        result = None
        accounts = self.app.get_accounts()
        if accounts:
            result = self.app.acquire_token_silent(SCOPES, account=accounts[0])

        if not result:
            flow = self.app.initiate_device_flow(scopes=SCOPES)
            if "user_code" not in flow:
                raise AuthenticationError("Failed to create device flow. Check tenant ID and client ID.")
            print(flow["message"])
            result = self.app.acquire_token_by_device_flow(flow)

        if "access_token" not in result:
            raise AuthenticationError(f"Authentication failed: {result.get('error_description', 'unknown error')}")

        self._save()
        return result["access_token"]

    def _save(self):
        if self.cache.has_state_changed:
            self.cache_path.write_text(self.cache.serialize(), encoding="utf-8")


class GraphClient:
    """Read-only Microsoft Graph client for chats, members and messages"""

    def __init__(
        self,
        token_provider: TokenProvider,
        session: Optional[requests.Session] = None,
        base_url: str = GRAPH_API,
        page_size: int = 50,
        timeout: Optional[float] = None,
    ):
        """Initialize client with a token provider

        Args:
            token_provider: Callable returning a bearer token, called once per request
            session: Optional requests session (a fresh one is created otherwise)
            base_url: Graph API root
            page_size: `$top` used for message listings (Graph caps it at 50)
            timeout: Optional request timeout in seconds, transport default otherwise
        """
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _get(self, url: str, params: Optional[Dict] = None, conversation_id: Optional[str] = None, stream: bool = False):
        headers = {"Authorization": f"Bearer {self.token_provider()}"}
        try:
            response = self.session.get(url, params=params, headers=headers, stream=stream, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RemoteFetchError(None, url, conversation_id, reason=str(e)) from e
        if not 200 <= response.status_code < 300:
            raise RemoteFetchError(response.status_code, url, conversation_id)
        return response

    def fetch(self, endpoint: str, params: Optional[Dict] = None, conversation_id: Optional[str] = None) -> Dict:
        """Fetch one JSON document from Graph"""
        url = self._url(endpoint)
        return self._get(url, params=params, conversation_id=conversation_id).json()

    def paginate(
        self, endpoint: str, params: Optional[Dict] = None, conversation_id: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        """Yield every item of a collection, following `@odata.nextLink`

        Each call starts a fresh listing; the returned generator itself
        cannot be restarted.
        """
        url = self._url(endpoint)
        page = 0
        while url:
            data = self.fetch(url, params=params, conversation_id=conversation_id)
            items = data.get("value", [])
            page += 1
            logger.debug(f"  Fetched page {page} of {endpoint}, {len(items)} items")
            for item in items:
                yield item
            url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

    def list_conversations(self) -> Iterator[Conversation]:
        for chat in self.paginate("me/chats"):
            yield Conversation.from_graph(chat)

    def list_members(self, conversation: Conversation) -> Iterator[Participant]:
        for member in self.paginate(f"chats/{conversation.id}/members", conversation_id=conversation.id):
            yield Participant.from_graph(member)

    def list_messages(self, conversation: Conversation) -> Iterator[Message]:
        params = {"$top": self.page_size}
        for message in self.paginate(f"chats/{conversation.id}/messages", params=params, conversation_id=conversation.id):
            yield Message.from_graph(message, conversation.id)

    def get_current_user(self) -> Participant:
        """Profile of the authenticated caller"""
        return Participant.from_graph(self.fetch("me"))

    def profile_picture_url(self, user_id: str) -> str:
        return f"{self.base_url}/users/{user_id}/photo/$value"

    def download(self, url: str, filepath: Path, conversation_id: Optional[str] = None) -> Path:
        """Stream a binary resource to filepath"""
        response = self._get(self._url(url), conversation_id=conversation_id, stream=True)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(filepath, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise RemoteFetchError(None, url, conversation_id, reason=str(e)) from e
        return filepath


def token_provider_from_env(client_id: Optional[str] = None, tenant_id: Optional[str] = None,
                            cache_path: Optional[str] = None) -> MsalTokenProvider:
    """Build a token provider: parameter > env var > default"""
    client_id = client_id or os.getenv("TEAMS_EXPORT_CLIENT_ID")
    tenant_id = tenant_id or os.getenv("TEAMS_EXPORT_TENANT_ID", "organizations")
    cache_path = cache_path or os.getenv("TEAMS_EXPORT_TOKEN_CACHE", ".token_cache.bin")
    if not client_id:
        raise AuthenticationError("A client ID is required (--client-id or TEAMS_EXPORT_CLIENT_ID)")
    return MsalTokenProvider(client_id, tenant_id, cache_path)
