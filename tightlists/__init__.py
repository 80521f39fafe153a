"""
tight-lists — keep Markdown list blocks tight while you edit.

Architecture:
    engine     (pure):   line classifier + single-pass tight-list rewriter
    rules      (pure):   folder-scoped policy resolution (longest prefix wins)
    pipeline   (async):  read -> rewrite -> write back -> restore cursor
    scheduler  (async):  per-document debounce, reentrancy guard, deferral
    external   (async):  optional mdformat subprocess adapter
    watcher / cli:       foreground host integration for plain directories
"""

__version__ = "0.1.0"

# Metadata (front matter) fence, recognised only as the first line
METADATA_FENCE = "---"

# Debounce delay bounds, in seconds
DEBOUNCE_MIN_SECS = 1
DEBOUNCE_MAX_SECS = 30
DEFAULT_DEBOUNCE_SECS = 5

# External formatter
EXTERNAL_FORMATTER_NAME = "mdformat"
EXTERNAL_FORMATTER_TIMEOUT_SECS = 30.0
TIGHT_LISTS_PLUGIN_MARKER = "tight-lists"

# Host integration
SETTINGS_FILENAME = ".tightlists.json"
WATCH_POLL_INTERVAL_SECS = 1.0
MARKDOWN_SUFFIX = ".md"
