"""Tests for the sermon-tts command-line interface."""
from __future__ import annotations

import json

import pytest

from sermon_tts.cli import main


def _last_json(out: str) -> dict:
    lines = [line for line in out.splitlines() if line.startswith("{")]
    return json.loads(lines[-1])


class TestChunkCommand:
    def test_chunk_json(self, settings_file, capsys):
        text = "First sentence here. Second sentence follows. Third one closes it out."
        assert main(["chunk", "--text", text, "--language", "es", "--json"]) == 0

        payload = _last_json(capsys.readouterr().out)
        assert payload["ok"] is True
        assert payload["dry_run"] is True
        assert payload["language_code"] == "es-ES"
        assert payload["max_chunk_size"] == 50
        assert payload["chunks"] == len(payload["segments"]) >= 2
        for seg in payload["segments"]:
            assert seg["chars"] <= 50
            assert len(seg["key"]) == 64

    def test_chunk_budget_flag(self, settings_file, capsys):
        assert main(["chunk", "--text", "One. Two. Three.", "--max-chunk-size", "6", "--json"]) == 0
        payload = _last_json(capsys.readouterr().out)
        assert payload["chunks"] == 3
        assert payload["language_code"] == "en-US"

    def test_chunk_from_file(self, settings_file, tmp_path, capsys):
        path = tmp_path / "sermon.txt"
        path.write_text("Grace and peace.", encoding="utf-8")
        assert main(["chunk", "--file", str(path), "--json"]) == 0
        assert _last_json(capsys.readouterr().out)["text_len"] == len("Grace and peace.")

    def test_chunk_requires_input(self, settings_file):
        with pytest.raises(SystemExit):
            main(["chunk"])

    def test_chunk_rejects_text_and_file(self, settings_file, tmp_path):
        path = tmp_path / "s.txt"
        path.write_text("x", encoding="utf-8")
        with pytest.raises(SystemExit):
            main(["chunk", "--text", "x", "--file", str(path)])

    def test_settings_flag(self, tmp_path, capsys):
        path = tmp_path / "other.yaml"
        path.write_text("chunking:\n  max_chunk_size: 7\n", encoding="utf-8")
        assert main(["--settings", str(path), "chunk", "--text", "Hello there friend.", "--json"]) == 0
        assert _last_json(capsys.readouterr().out)["max_chunk_size"] == 7


class TestStoreCommands:
    def test_status_unknown_document(self, settings_file, capsys):
        assert main(["status", "missing-doc", "--json"]) == 1
        payload = _last_json(capsys.readouterr().out)
        assert payload["ok"] is False
        assert payload["error"] == "DOCUMENT_NOT_FOUND"

    def test_generate_unknown_document(self, settings_file, capsys):
        assert main(["generate", "missing-doc", "--language", "en", "--json"]) == 1
        assert _last_json(capsys.readouterr().out)["error"] == "DOCUMENT_NOT_FOUND"

    def test_generate_invalid_id(self, settings_file, capsys):
        assert main(["generate", "a/b", "--json"]) == 1
        assert _last_json(capsys.readouterr().out)["error"] == "INVALID_INPUT"

    def test_sweep(self, settings_file, capsys):
        assert main(["sweep", "--ttl-days", "7", "--json"]) == 0
        assert _last_json(capsys.readouterr().out) == {"ok": True, "deleted": 0}


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

    def test_help_exits_zero(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0
        assert "sermon-tts CLI" in capsys.readouterr().out
