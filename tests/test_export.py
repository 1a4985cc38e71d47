"""Tests for the command-line entry point."""
import export
from conftest import FakeSession, chat, member, message, page
from graph_client import AuthenticationError, GraphClient


def fake_tenant():
    session = FakeSession()
    session.route("me", {"id": "u-me", "displayName": "Sam Me"})
    session.route("me/chats", page([chat("c-alex")]))
    session.route("chats/c-alex/members", page([member("u-me", "Sam Me"), member("u-alex", "Alex Doe")]))
    session.route("chats/c-alex/messages", page([message("m1", "hi from alex")]))
    return session


def patch_graph(monkeypatch, session):
    monkeypatch.setattr(export, "token_provider_from_env", lambda *a, **kw: (lambda: "token"))
    monkeypatch.setattr(
        export, "GraphClient",
        lambda token_provider, timeout=None: GraphClient(token_provider, session=session, timeout=timeout),
    )


def test_main_exports_to_output_dir(monkeypatch, tmp_path, capsys):
    patch_graph(monkeypatch, fake_tenant())

    code = export.main(["--output-dir", str(tmp_path), "--only", "Alex Doe", "--avoid-overwrite"])

    assert code == 0
    assert (tmp_path / "Alex Doe.html").exists()
    assert "hi from alex" in (tmp_path / "Alex Doe.html").read_text(encoding="utf-8")
    assert "1 conversation(s) exported" in capsys.readouterr().out


def test_main_reports_listing_failure(monkeypatch, tmp_path, capsys):
    session = fake_tenant()
    session.route("me/chats", 401)
    patch_graph(monkeypatch, session)

    code = export.main(["--output-dir", str(tmp_path)])

    assert code == 1
    assert "HTTP 401" in capsys.readouterr().out


def test_main_requires_credentials(monkeypatch, tmp_path, capsys):
    def no_credentials(*args, **kwargs):
        raise AuthenticationError("A client ID is required")

    monkeypatch.setattr(export, "token_provider_from_env", no_credentials)

    assert export.main(["--output-dir", str(tmp_path)]) == 1
    assert "client ID is required" in capsys.readouterr().out
