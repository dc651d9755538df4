"""
Tests for echosky.py - command line entry point

Only offline commands and a stubbed context are exercised here.
"""

from unittest.mock import patch

import pytest

import echosky
from forum.codec import encode_route_token
from tests.conftest import ME

URI = f"at://{ME}/app.echosky.board.thread/3kabc"


@pytest.fixture(autouse=True)
def no_config(monkeypatch, tmp_path):
    """Keep main() away from the real config, log and session files."""
    monkeypatch.setattr(echosky, "DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")
    monkeypatch.setattr(echosky.otherutils, "setup_logging", lambda *a, **kw: None)


class TestOfflineCommands:
    def test_token_encode(self, capsys):
        assert echosky.main(["--console", "token-encode", URI]) == 0
        assert capsys.readouterr().out.strip() == encode_route_token(URI)

    def test_token_decode(self, capsys):
        assert echosky.main(["--console", "token-decode", encode_route_token(URI)]) == 0
        assert capsys.readouterr().out.strip() == URI

    def test_bad_token_is_reported(self, capsys):
        assert echosky.main(["--console", "token-decode", "a"]) == 1
        assert capsys.readouterr().err.startswith("error: ")

    def test_unknown_reaction_kind_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            echosky.main(["--console", "react", URI, "bafy", "love"])


class TestOnlineCommands:
    def test_not_logged_in_returns_error(self, capsys, make_context):
        with patch.object(echosky.ForumContext, "from_config", return_value=make_context(logged_in=False)):
            code = echosky.main(["--console", "threads"])

        assert code == 1
        assert "Not logged in" in capsys.readouterr().err

    def test_threads_prints_route_tokens(self, capsys, make_context, fake_agent, thread_value):
        uri = fake_agent.add(ME, "app.echosky.board.thread", "t1", thread_value(title="Hello", board="abc"))
        ctx = make_context()

        with patch.object(echosky.ForumContext, "from_config", return_value=ctx), patch.object(
            ctx, "resume_session", return_value=True
        ):
            code = echosky.main(["--console", "threads"])

        assert code == 0
        line = capsys.readouterr().out.strip()
        assert line.split("\t") == ["2025-01-01T00:00:00.000Z", "abc", "Hello", encode_route_token(uri)]

    def test_react_accepts_route_token(self, capsys, make_context, fake_agent):
        ctx = make_context()

        with patch.object(echosky.ForumContext, "from_config", return_value=ctx), patch.object(
            ctx, "resume_session", return_value=True
        ):
            code = echosky.main(["--console", "react", encode_route_token(URI), "bafy", "star"])

        assert code == 0
        key = capsys.readouterr().out.strip()
        assert fake_agent.stored(ME, "app.echosky.board.reaction")[key]["subject"] == {"uri": URI, "cid": "bafy"}
