"""
Tests for folder policy resolution and settings persistence.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tightlists.config import (
    ConfigError, Settings, load_settings, read_settings, save_settings,
)
from tightlists.rules import (
    FolderRule, FormatPolicy, find_rule, path_depth, resolve, rule_applies,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def default_policy():
    return FormatPolicy(enabled=False, use_external_formatter=False, debounce_delay=5)


@pytest.fixture
def notes_rules():
    return {
        "Notes": FolderRule(enabled=False),
        "Notes/Daily": FolderRule(enabled=True),
    }


# ---------------------------------------------------------------------------
# TestResolve
# ---------------------------------------------------------------------------

class TestResolve:
    """Longest-prefix folder rule resolution."""

    def test_deepest_rule_wins(self, notes_rules, default_policy):
        assert resolve("Notes/Daily/today.md", notes_rules, default_policy).enabled is True

    def test_parent_rule_applies(self, notes_rules):
        default = FormatPolicy(enabled=True)
        assert resolve("Notes/other.md", notes_rules, default).enabled is False

    def test_no_rule_returns_default_unchanged(self, notes_rules, default_policy):
        assert resolve("Other/x.md", notes_rules, default_policy) is default_policy

    def test_order_of_rules_irrelevant(self, default_policy):
        rules = {"Notes/Daily": FolderRule(enabled=True), "Notes": FolderRule(enabled=False)}
        assert resolve("Notes/Daily/x.md", rules, default_policy).enabled is True
        assert resolve("Notes/x.md", rules, FormatPolicy(enabled=True)).enabled is False

    def test_prefix_must_end_at_separator(self, default_policy):
        rules = {"Note": FolderRule(enabled=True)}
        assert resolve("Notesomething.md", rules, default_policy).enabled is False
        assert resolve("Note/x.md", rules, default_policy).enabled is True

    def test_exact_path_matches(self, default_policy):
        rules = {"Inbox/todo.md": FolderRule(enabled=True)}
        assert resolve("Inbox/todo.md", rules, default_policy).enabled is True

    def test_trailing_slash_on_rule_ignored(self, default_policy):
        rules = {"Notes/": FolderRule(enabled=True)}
        assert resolve("Notes/a.md", rules, default_policy).enabled is True

    def test_unset_fields_fall_back_to_default(self):
        default = FormatPolicy(enabled=False, use_external_formatter=True, debounce_delay=12)
        policy = resolve("Notes/a.md", {"Notes": FolderRule(enabled=True)}, default)
        assert policy.enabled is True
        assert policy.use_external_formatter is True
        assert policy.debounce_delay == 12

    def test_rule_can_override_formatter(self, default_policy):
        rules = {"Docs": FolderRule(use_external_formatter=True)}
        policy = resolve("Docs/a.md", rules, default_policy)
        assert policy.use_external_formatter is True
        assert policy.enabled is False

    def test_find_rule_reports_winner(self, notes_rules):
        folder, rule = find_rule("Notes/Daily/x.md", notes_rules)
        assert folder == "Notes/Daily"
        assert rule.enabled is True
        assert find_rule("Elsewhere.md", notes_rules) is None

    def test_helpers(self):
        assert path_depth("a/b/c") == 3
        assert path_depth("a/") == 1
        assert rule_applies("a", "a/b.md")
        assert not rule_applies("", "a/b.md")


# ---------------------------------------------------------------------------
# TestSettings
# ---------------------------------------------------------------------------

class TestSettings:
    """Settings schema parsing and persistence."""

    def test_defaults(self):
        settings = Settings.from_dict({})
        assert settings.default == FormatPolicy()
        assert settings.folder_rules == {}

    def test_parse_schema(self):
        settings = Settings.from_dict({
            "globalDefault": {
                "enabled": True,
                "useExternalFormatter": False,
                "debounceDelaySeconds": 2,
                "formatOnOpen": True,
            },
            "folderRules": {"Notes/Daily": {"enabled": False}},
        })
        assert settings.default.enabled is True
        assert settings.default.debounce_delay == 2
        assert settings.default.format_on_open is True
        assert settings.folder_rules == {"Notes/Daily": FolderRule(enabled=False)}
        assert settings.policy_for("Notes/Daily/a.md").enabled is False
        assert settings.policy_for("x.md").enabled is True

    @pytest.mark.parametrize("delay", [0, 31, -1, "5", True])
    def test_delay_out_of_range(self, delay):
        with pytest.raises(ConfigError, match="debounceDelaySeconds"):
            Settings.from_dict({"globalDefault": {"debounceDelaySeconds": delay}})

    def test_delay_bounds_inclusive(self):
        assert Settings.from_dict({"globalDefault": {"debounceDelaySeconds": 1}}).default.debounce_delay == 1
        assert Settings.from_dict({"globalDefault": {"debounceDelaySeconds": 30}}).default.debounce_delay == 30

    def test_non_bool_flag_rejected(self):
        with pytest.raises(ConfigError, match="enabled"):
            Settings.from_dict({"folderRules": {"Notes": {"enabled": "yes"}}})

    def test_empty_folder_rejected(self):
        with pytest.raises(ConfigError, match="non-empty"):
            Settings.from_dict({"folderRules": {"/": {"enabled": True}}})

    def test_save_and_read(self, tmp_path):
        settings = Settings(
            default=FormatPolicy(enabled=True, debounce_delay=3),
            folder_rules={"Notes": FolderRule(enabled=False)},
        )
        path = tmp_path / "cfg" / "settings.json"
        save_settings(settings, path)

        data = json.loads(path.read_text())
        assert data["globalDefault"]["debounceDelaySeconds"] == 3
        assert data["folderRules"] == {"Notes": {"enabled": False}}
        assert read_settings(path) == settings
        assert not list(path.parent.glob("*.tmp"))

    def test_read_toml(self, tmp_path):
        path = tmp_path / "settings.toml"
        path.write_text(
            "[globalDefault]\nenabled = true\ndebounceDelaySeconds = 10\n\n"
            '[folderRules."Notes/Daily"]\nenabled = false\n'
        )
        settings = read_settings(path)
        assert settings.default.debounce_delay == 10
        assert settings.folder_rules["Notes/Daily"].enabled is False

    def test_load_missing_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.json") == Settings()
        assert load_settings(None) == Settings()

    def test_load_corrupt_warns_and_defaults(self, tmp_path, caplog):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="tightlists.config"):
            assert load_settings(path) == Settings()
        assert "Failed to load settings" in caplog.text

    def test_read_corrupt_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            read_settings(path)
