"""
Format policies and folder-scoped overrides.

A document's effective policy is the global default, overridden by the
deepest folder rule whose path is the document's path or one of its
ancestors:

    default  enabled=False
    Notes        -> enabled=False
    Notes/Daily  -> enabled=True

    Notes/Daily/today.md  -> enabled=True   (Notes/Daily is deeper)
    Notes/other.md        -> enabled=False
    Other/x.md            -> default
    Notesomething.md      -> default        (prefix must end at a separator)
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from tightlists import DEFAULT_DEBOUNCE_SECS

PATH_SEPARATOR = "/"


@dataclass(frozen=True)
class FormatPolicy:
    """Effective formatting policy for one document."""

    enabled: bool = False
    use_external_formatter: bool = False
    debounce_delay: float = DEFAULT_DEBOUNCE_SECS
    format_on_open: bool = False
    format_on_focus_change: bool = False
    fallback_to_internal: bool = False


@dataclass(frozen=True)
class FolderRule:
    """Partial policy override for a folder. ``None`` means "use the default"."""

    enabled: bool | None = None
    use_external_formatter: bool | None = None


FolderRuleTable = dict[str, FolderRule]


def normalize_folder(folder: str) -> str:
    return folder.strip().rstrip(PATH_SEPARATOR)


def path_depth(folder: str) -> int:
    return len(normalize_folder(folder).split(PATH_SEPARATOR))


def rule_applies(folder: str, path: str) -> bool:
    """True if ``path`` is ``folder`` itself or lies somewhere beneath it."""
    folder = normalize_folder(folder)
    if not folder:
        return False
    return path == folder or path.startswith(folder + PATH_SEPARATOR)


def find_rule(path: str, rules: FolderRuleTable) -> tuple[str, FolderRule] | None:
    """Return the deepest applicable ``(folder, rule)`` pair, or None."""
    best: tuple[str, FolderRule] | None = None
    best_depth = -1
    for folder, rule in rules.items():
        if not rule_applies(folder, path):
            continue
        depth = path_depth(folder)
        if depth > best_depth:
            best_depth = depth
            best = (folder, rule)
    return best


def resolve(path: str, rules: FolderRuleTable, default: FormatPolicy) -> FormatPolicy:
    """Compute the effective policy for a document path (longest prefix wins)."""
    found = find_rule(path, rules)
    if found is None:
        return default

    _folder, rule = found
    overrides = {}
    if rule.enabled is not None:
        overrides["enabled"] = rule.enabled
    if rule.use_external_formatter is not None:
        overrides["use_external_formatter"] = rule.use_external_formatter
    return replace(default, **overrides)
