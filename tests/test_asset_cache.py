"""Tests for the asset cache: download-once semantics and file naming."""
import logging

from asset_cache import AssetCache
from graph_client import GRAPH_API

IMAGE_URL = f"{GRAPH_API}/chats/19:abc@thread.v2/messages/17/hostedContents/aWQ9eF8wLXd1cy1k/$value"


def test_same_asset_is_fetched_once_per_run(client, session, tmp_path):
    session.route("users/u1/photo/$value", b"jpeg-bytes")
    cache = AssetCache(client, tmp_path)

    first = cache.get_profile_picture("u1")
    second = cache.get_profile_picture("u1")

    assert first == second == tmp_path / "assets" / "u1.jpg"
    assert cache.fetch_count == 1
    assert session.urls().count(f"{GRAPH_API}/users/u1/photo/$value") == 1
    assert first.read_bytes() == b"jpeg-bytes"


def test_existing_file_is_reused_across_runs(client, session, tmp_path):
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "u1.jpg").write_bytes(b"from an earlier run")
    session.route("users/u1/photo/$value", b"new bytes")

    path = AssetCache(client, tmp_path).get_profile_picture("u1")

    assert path.read_bytes() == b"from an earlier run"
    assert session.calls == []


def test_failed_fetch_is_not_retried_within_run(client, session, tmp_path, caplog):
    cache = AssetCache(client, tmp_path)

    with caplog.at_level(logging.WARNING):
        assert cache.get_profile_picture("u-nophoto") is None
        assert cache.get_profile_picture("u-nophoto") is None

    assert cache.fetch_count == 1
    assert len(session.calls) == 1
    assert not list((tmp_path / "assets").glob("*"))
    assert "u-nophoto" in caplog.text


def test_embedded_image_uses_hashed_filename(client, session, tmp_path):
    session.route(IMAGE_URL, b"png-bytes")
    cache = AssetCache(client, tmp_path)
    tag = f'<img alt="image" src="{IMAGE_URL}" width="250" itemtype="http://schema.skype.com/AMSImage">'

    path = cache.get_embedded_image(tag)

    assert path.parent == tmp_path / "assets"
    assert path.suffix == ".png"
    assert "/" not in path.name and ":" not in path.name
    assert path.read_bytes() == b"png-bytes"
    assert cache.get_embedded_image(tag) == path
    assert cache.fetch_count == 1


def test_markup_without_graph_image_is_ignored(client, tmp_path):
    cache = AssetCache(client, tmp_path)

    assert cache.get_embedded_image('<img src="https://example.com/cat.png">') is None
    assert cache.fetch_count == 0


def test_filename_is_deterministic(client, tmp_path):
    cache = AssetCache(client, tmp_path)

    assert cache.filename_for("8b3c-41_ab", ".jpg") == "8b3c-41_ab.jpg"
    assert cache.filename_for(IMAGE_URL, ".png") == cache.filename_for(IMAGE_URL, ".png")
    assert cache.filename_for(IMAGE_URL, ".png") != cache.filename_for(IMAGE_URL + "x", ".png")


def test_href_is_relative_to_output_dir(client, tmp_path):
    cache = AssetCache(client, tmp_path)

    assert cache.href(tmp_path / "assets" / "u1.jpg") == "assets/u1.jpg"
    assert cache.href(None) == ""
