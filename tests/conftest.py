"""
Pytest configuration and shared fixtures.

The Graph API is replaced by FakeSession, which answers requests from a
routing table of URL -> JSON document / bytes / status code.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from graph_client import GRAPH_API, GraphClient
from message_renderer import Templates
from models import Participant


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b""):
        self.status_code = status_code
        self._payload = payload
        self.content = content

    def json(self):
        return self._payload

    def iter_content(self, chunk_size=8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


class FakeSession:
    """Stand-in for requests.Session; unknown URLs answer 404"""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes = routes or {}
        self.calls: List[Dict[str, Any]] = []

    def route(self, endpoint: str, answer: Any):
        url = endpoint if endpoint.startswith("http") else f"{GRAPH_API}/{endpoint}"
        self.routes[url] = answer

    def get(self, url, params=None, headers=None, stream=False, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers})
        answer = self.routes.get(url)
        if answer is None:
            return FakeResponse(404, {"error": {"message": "not found"}})
        if isinstance(answer, int):
            return FakeResponse(answer, {})
        if isinstance(answer, bytes):
            return FakeResponse(200, content=answer)
        return FakeResponse(200, answer)

    def urls(self) -> List[str]:
        return [c["url"] for c in self.calls]


def chat(chat_id: str, chat_type: str = "oneOnOne", topic: Optional[str] = None) -> Dict[str, Any]:
    return {"id": chat_id, "chatType": chat_type, "topic": topic}


def member(user_id: str, name: str) -> Dict[str, Any]:
    return {
        "@odata.type": "#microsoft.graph.aadUserConversationMember",
        "userId": user_id,
        "displayName": name,
    }


def message(message_id: str, text: str = "hello", sender: Optional[Dict[str, str]] = None,
            message_type: str = "message", **extra) -> Dict[str, Any]:
    sender = sender or {"id": "u-alex", "displayName": "Alex Doe"}
    data = {
        "id": message_id,
        "messageType": message_type,
        "createdDateTime": "2024-03-01T10:15:00.000Z",
        "from": {"user": sender},
        "body": {"contentType": "html", "content": text},
        "importance": "normal",
        "attachments": [],
    }
    data.update(extra)
    return data


def page(items, next_link: Optional[str] = None) -> Dict[str, Any]:
    data = {"value": list(items)}
    if next_link:
        data["@odata.nextLink"] = next_link
    return data


@pytest.fixture
def me():
    return Participant(user_id="u-me", display_name="Sam Me")


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def tokens():
    """Token provider handing out a new token per call"""
    issued = []

    def provider():
        issued.append(f"token-{len(issued) + 1}")
        return issued[-1]

    provider.issued = issued
    return provider


@pytest.fixture
def client(session, tokens):
    return GraphClient(tokens, session=session)


@pytest.fixture
def templates():
    """Compact templates that make fragments easy to assert on"""
    return Templates(
        conversation="<h1>{{name}}</h1><style>{{style}}</style>{{messages}}",
        message=(
            "[{{sender}}|{{time}}|me={{is_me}}|del={{deleted}}|ed={{edited}}|"
            "pic={{picture}}|imp={{importance}}|att={{attachments}}]{{body}};"
        ),
        style="body{}",
    )


@pytest.fixture
def template_dir():
    return Path(__file__).resolve().parent.parent / "templates"
