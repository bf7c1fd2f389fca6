"""Tests for the command line interface."""
import asyncio

import pytest
from typer.testing import CliRunner

from openllama.backends.adapters import local as local_adapter
from openllama.backends.adapters.local import LocalModelRuntime
from openllama.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep commands away from the user's saved settings."""
    for name in ("OPENLLAMA_BACKEND", "OPENLLAMA_API_URL", "OPENLLAMA_API_KEY",
                 "OPENLLAMA_MODEL", "OPENLLAMA_SYSTEM_PROMPT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENLLAMA_STORE", "memory")
    monkeypatch.setenv("OPENLLAMA_STORE_PATH", str(tmp_path / "openllama.db"))


class TestCli:
    """Tests for CLI commands."""

    def test_models(self):
        result = runner.invoke(app, ["models"])

        assert result.exit_code == 0
        assert "local-model" in result.output
        assert "Qwen" in result.output

    def test_ask_with_mock_backend(self):
        result = runner.invoke(app, ["ask", "hello", "--backend", "mock"])

        assert result.exit_code == 0
        assert "Mock Mode" in result.output
        assert "T/s" in result.output

    def test_ask_with_attachment(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("remember the milk")

        result = runner.invoke(app, ["ask", "read this", "-b", "mock", "--attach", str(path)])

        assert result.exit_code == 0
        assert "1 attachment(s)" in result.output

    def test_ask_missing_attachment(self, tmp_path):
        result = runner.invoke(app, ["ask", "x", "-b", "mock", "-a", str(tmp_path / "nope.txt")])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_configure_then_list_sessions(self, tmp_path):
        db = str(tmp_path / "chat.db")

        configured = runner.invoke(app, ["configure", "--backend", "mock", "--store-path", db])
        listed = runner.invoke(app, ["sessions", "--store-path", db])

        assert configured.exit_code == 0
        assert "Settings saved" in configured.output
        assert listed.exit_code == 0
        assert "No sessions yet" in listed.output

    def test_health_with_mock_backend(self):
        result = runner.invoke(app, ["health"], env={"OPENLLAMA_BACKEND": "mock"})

        assert result.exit_code == 0
        assert "Backend: mock" in result.output

    def test_chat_rename_then_quit(self):
        result = runner.invoke(
            app, ["chat", "--store", "memory", "-b", "mock"],
            input="/rename Groceries\n/quit\n",
        )

        assert result.exit_code == 0
        assert "Renamed to Groceries" in result.output
        assert "Goodbye" in result.output

    def test_chat_exit_unloads_local_model(self, monkeypatch, fake_pipeline_loader):
        runtime = LocalModelRuntime(fake_pipeline_loader(["x"]))
        asyncio.run(runtime.ensure_loaded("tiny"))
        monkeypatch.setattr(local_adapter, "_process_runtime", runtime)

        result = runner.invoke(app, ["chat", "--store", "memory", "-b", "mock"], input="/quit\n")

        assert result.exit_code == 0
        assert runtime.model_id is None
