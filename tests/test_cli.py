"""Tests for the ``ollachat`` command line."""

from unittest.mock import patch

import pytest

from ollachat import __main__ as cli
from ollachat.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("OLLACHAT_CONFIG_DIR", str(tmp_path))
    monkeypatch.delenv("OLLACHAT_DEFAULT_MODEL", raising=False)
    get_settings.cache_clear()
    with patch.object(cli, "setup_logging"):
        yield
    get_settings.cache_clear()


class TestCommands:
    def test_serve(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["ollachat", "serve", "--port", "4000"])
        with patch("ollachat.api.serve.run_api_server") as run:
            cli.main()
        run.assert_called_once_with(host=None, port=4000, dev=False)

    def test_models_exit_code(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["ollachat", "models"])
        with patch.object(cli, "_print_models", return_value=0):
            with pytest.raises(SystemExit) as exc:
                cli.main()
        assert exc.value.code == 0

    def test_chat_requires_model(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["ollachat", "chat"])
        with pytest.raises(SystemExit) as exc:
            cli.main()
        assert exc.value.code == 2

    def test_chat_uses_default_server(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["ollachat", "chat", "-m", "llama3"])
        with patch("ollachat.client.repl.run_chat") as run_chat, patch.object(
            cli.asyncio, "run"
        ) as run:
            cli.main()
        run_chat.assert_called_once_with("http://127.0.0.1:3001", "llama3", None)
        run.assert_called_once()

    def test_unknown_command(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["ollachat", "dance"])
        with pytest.raises(SystemExit):
            cli.main()
