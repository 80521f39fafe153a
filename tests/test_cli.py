"""
Tests for the tightlists command line.
"""

from __future__ import annotations

import io
import json

import pytest

from tightlists import __version__
from tightlists.cli import build_parser, main
from tightlists.external import ExternalFormatter


@pytest.fixture
def no_mdformat(monkeypatch):
    monkeypatch.setattr(ExternalFormatter, "discover", classmethod(lambda cls, *a, **kw: None))


@pytest.fixture
def loose(tmp_path):
    path = tmp_path / "loose.md"
    path.write_text("- a\n\n- b\n")
    return path


# ---------------------------------------------------------------------------
# TestFormatCommand
# ---------------------------------------------------------------------------

class TestFormatCommand:

    def test_stdin_to_stdout(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("Intro\n- a\n\n- b\n"))
        main(["format"])
        assert capsys.readouterr().out == "Intro\n\n- a\n- b\n"

    def test_rewrites_in_place(self, loose, capsys):
        main(["format", str(loose)])
        assert loose.read_text() == "- a\n- b\n"
        assert f"Formatted: {loose}" in capsys.readouterr().out

    def test_unchanged_file_not_reported(self, tmp_path, capsys):
        path = tmp_path / "tight.md"
        path.write_text("- a\n- b\n")
        main(["format", str(path)])
        assert capsys.readouterr().out == ""

    def test_keeps_crlf(self, tmp_path):
        path = tmp_path / "win.md"
        path.write_bytes(b"- a\r\n\r\n- b\r\n")
        main(["format", str(path)])
        assert path.read_bytes() == b"- a\r\n- b\r\n"

    def test_check_reports_without_writing(self, loose, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["format", "--check", str(loose)])
        assert excinfo.value.code == 1
        assert loose.read_text() == "- a\n\n- b\n"
        captured = capsys.readouterr()
        assert f"Would reformat: {loose}" in captured.out
        assert "1 file(s) would be reformatted" in captured.err

    def test_check_clean_exits_normally(self, tmp_path):
        path = tmp_path / "tight.md"
        path.write_text("- a\n- b\n")
        main(["format", "--check", str(path)])

    def test_skips_non_markdown_and_missing(self, tmp_path, capsys):
        txt = tmp_path / "notes.txt"
        txt.write_text("- a\n\n- b\n")
        main(["format", str(txt), str(tmp_path / "gone.md")])
        err = capsys.readouterr().err
        assert "is not a .md file, skipping" in err
        assert "not found, skipping" in err
        assert txt.read_text() == "- a\n\n- b\n"

    def test_undecodable_file_does_not_stop_batch(self, tmp_path, loose, capsys):
        latin = tmp_path / "latin.md"
        latin.write_bytes(b"- caf\xe9\n\n- b\n")
        with pytest.raises(SystemExit) as excinfo:
            main(["format", str(latin), str(loose)])
        assert excinfo.value.code == 1
        assert loose.read_text() == "- a\n- b\n"
        assert latin.read_bytes() == b"- caf\xe9\n\n- b\n"
        captured = capsys.readouterr()
        assert f"Error processing {latin}" in captured.err
        assert f"Formatted: {loose}" in captured.out

    def test_external_without_mdformat(self, loose, no_mdformat, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["format", "--external", str(loose)])
        assert excinfo.value.code == 1
        assert "mdformat not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# TestOtherCommands
# ---------------------------------------------------------------------------

class TestOtherCommands:

    def test_no_command_prints_usage(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 0
        assert "Usage:" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert __version__ in capsys.readouterr().out

    def test_resolve_uses_folder_rule(self, tmp_path, capsys):
        (tmp_path / ".tightlists.json").write_text(json.dumps({
            "globalDefault": {"enabled": False, "debounceDelaySeconds": 7},
            "folderRules": {"Notes/Daily": {"enabled": True}},
        }))
        main(["resolve", "Notes/Daily/today.md", "--root", str(tmp_path)])
        out = capsys.readouterr().out
        assert "source:    folder rule 'Notes/Daily'" in out
        assert "enabled:   yes" in out
        assert "formatter: internal" in out
        assert "delay:     7s" in out

    def test_resolve_global_default(self, tmp_path, capsys):
        main(["resolve", "x.md", "--root", str(tmp_path)])
        out = capsys.readouterr().out
        assert "source:    global default" in out
        assert "enabled:   no" in out

    def test_resolve_missing_config(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["resolve", "x.md", "--config", str(tmp_path / "absent.json")])
        assert excinfo.value.code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_resolve_invalid_config(self, tmp_path, capsys):
        cfg = tmp_path / "bad.json"
        cfg.write_text(json.dumps({"globalDefault": {"debounceDelaySeconds": 99}}))
        with pytest.raises(SystemExit) as excinfo:
            main(["resolve", "x.md", "--config", str(cfg)])
        assert excinfo.value.code == 1
        assert "debounceDelaySeconds" in capsys.readouterr().err

    def test_toggle_global_creates_and_flips(self, tmp_path, capsys):
        cfg = tmp_path / ".tightlists.json"
        main(["toggle", "--root", str(tmp_path)])
        assert json.loads(cfg.read_text())["globalDefault"]["enabled"] is True
        assert "Auto-format enabled globally" in capsys.readouterr().out

        main(["toggle", "--root", str(tmp_path)])
        assert json.loads(cfg.read_text())["globalDefault"]["enabled"] is False
        assert "Auto-format disabled globally" in capsys.readouterr().out

    def test_toggle_folder_keeps_other_settings(self, tmp_path, capsys):
        cfg = tmp_path / "settings.json"
        cfg.write_text(json.dumps({
            "globalDefault": {"enabled": False, "debounceDelaySeconds": 9},
            "folderRules": {"Notes": {"useExternalFormatter": True}},
        }))
        main(["toggle", "--folder", "Notes/", "--config", str(cfg)])
        data = json.loads(cfg.read_text())
        assert data["folderRules"]["Notes"] == {"enabled": True, "useExternalFormatter": True}
        assert data["globalDefault"]["debounceDelaySeconds"] == 9
        assert data["globalDefault"]["enabled"] is False
        assert "Auto-format enabled for Notes" in capsys.readouterr().out

    def test_toggle_rejects_invalid_config(self, tmp_path, capsys):
        cfg = tmp_path / "bad.json"
        cfg.write_text("{nope")
        with pytest.raises(SystemExit) as excinfo:
            main(["toggle", "--config", str(cfg)])
        assert excinfo.value.code == 1
        assert cfg.read_text() == "{nope"

    def test_doctor_without_mdformat(self, no_mdformat, capsys):
        main(["doctor"])
        assert "mdformat: not found" in capsys.readouterr().out

    def test_watch_requires_directory(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["watch", str(tmp_path / "nope")])
        assert excinfo.value.code == 1
        assert "Not a directory" in capsys.readouterr().err

    def test_parser_defaults(self):
        args = build_parser().parse_args(["watch", "notes"])
        assert args.interval == 1.0
        assert args.config is None
        assert args.verbose is False
