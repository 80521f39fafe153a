"""
Settings — global default policy plus folder rules, persisted as JSON.

Schema (camelCase, as stored on disk):
    {
      "globalDefault": {
        "enabled": false,
        "useExternalFormatter": false,
        "debounceDelaySeconds": 5,          # 1..30
        "formatOnOpen": false,
        "formatOnFocusChange": false,
        "fallbackToInternal": false
      },
      "folderRules": {
        "Notes/Daily": {"enabled": true}
      }
    }

Missing keys take their defaults. TOML files with the same layout are
accepted for reading. Writes are atomic (temp file + os.replace).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tightlists import DEBOUNCE_MAX_SECS, DEBOUNCE_MIN_SECS
from tightlists.rules import FolderRule, FolderRuleTable, FormatPolicy, normalize_folder, resolve

log = logging.getLogger(__name__)

# JSON key -> FormatPolicy attribute
_POLICY_KEYS = {
    "enabled": "enabled",
    "useExternalFormatter": "use_external_formatter",
    "debounceDelaySeconds": "debounce_delay",
    "formatOnOpen": "format_on_open",
    "formatOnFocusChange": "format_on_focus_change",
    "fallbackToInternal": "fallback_to_internal",
}

_RULE_KEYS = {
    "enabled": "enabled",
    "useExternalFormatter": "use_external_formatter",
}


class ConfigError(Exception):
    """Malformed settings."""


def _expect_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _parse_delay(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"debounceDelaySeconds must be a number, got {value!r}")
    if not DEBOUNCE_MIN_SECS <= value <= DEBOUNCE_MAX_SECS:
        raise ConfigError(
            f"debounceDelaySeconds must be between {DEBOUNCE_MIN_SECS} and "
            f"{DEBOUNCE_MAX_SECS}, got {value}"
        )
    return value


def _parse_policy(data: Any) -> FormatPolicy:
    if not isinstance(data, dict):
        raise ConfigError("globalDefault must be an object")
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        attr = _POLICY_KEYS.get(key)
        if attr is None:
            log.debug("Ignoring unknown globalDefault key %r", key)
            continue
        if attr == "debounce_delay":
            kwargs[attr] = _parse_delay(value)
        else:
            kwargs[attr] = _expect_bool(value, key)
    return FormatPolicy(**kwargs)


def _parse_rules(data: Any) -> FolderRuleTable:
    if not isinstance(data, dict):
        raise ConfigError("folderRules must be an object")
    rules: FolderRuleTable = {}
    for folder, body in data.items():
        name = normalize_folder(str(folder))
        if not name:
            raise ConfigError("folderRules keys must be non-empty folder paths")
        if not isinstance(body, dict):
            raise ConfigError(f"folderRules[{folder!r}] must be an object")
        kwargs = {
            _RULE_KEYS[key]: _expect_bool(value, f"folderRules[{folder!r}].{key}")
            for key, value in body.items()
            if key in _RULE_KEYS
        }
        rules[name] = FolderRule(**kwargs)
    return rules


@dataclass
class Settings:
    """Global default policy and folder overrides.

    Usage:
        settings = load_settings(Path(".tightlists.json"))
        policy = settings.policy_for("Notes/Daily/today.md")
    """

    default: FormatPolicy = field(default_factory=FormatPolicy)
    folder_rules: FolderRuleTable = field(default_factory=dict)

    def policy_for(self, path: str) -> FormatPolicy:
        return resolve(path, self.folder_rules, self.default)

    @classmethod
    def from_dict(cls, data: Any) -> Settings:
        if not isinstance(data, dict):
            raise ConfigError("settings must be an object")
        return cls(
            default=_parse_policy(data.get("globalDefault", {})),
            folder_rules=_parse_rules(data.get("folderRules", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        default = {key: getattr(self.default, attr) for key, attr in _POLICY_KEYS.items()}
        rules = {}
        for folder, rule in sorted(self.folder_rules.items()):
            rules[folder] = {
                key: getattr(rule, attr)
                for key, attr in _RULE_KEYS.items()
                if getattr(rule, attr) is not None
            }
        return {"globalDefault": default, "folderRules": rules}


def read_settings(path: Path) -> Settings:
    """Read settings from a JSON or TOML file. Raises ConfigError on bad content."""
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    return Settings.from_dict(data)


def load_settings(path: Path | None) -> Settings:
    """Load settings, falling back to defaults when missing or malformed."""
    if path is None or not path.is_file():
        return Settings()
    try:
        return read_settings(path)
    except (ConfigError, OSError) as e:
        log.warning("Failed to load settings from %s: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: Path) -> None:
    """Atomically write settings as JSON (temp + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(settings.to_dict(), indent=2, sort_keys=True) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=".settings_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, str(path))
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
