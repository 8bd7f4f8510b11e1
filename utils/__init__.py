"""Shared utilities for eCFR Analyzer tools."""

# Pattern definitions
from utils.patterns import (
    FTS5_SPECIAL_CHARS,
    ISO_DATE,
    NUMBER_CHUNKS,
    PATH_SEGMENT,
    PURE_INTEGER,
    SEARCHABLE_TERM,
)

# String utilities
from utils.strings import (
    escape_like,
    normalize_regulation_path,
    normalize_whitespace,
    sanitize_fts5_query,
)

# Database utilities
from utils.database import (
    init_pragmas,
    batch_insert,
    get_table_count,
    table_exists,
    create_fts5_index,
    disable_fts5_triggers,
    enable_fts5_triggers,
    query_to_dicts,
)

# Output formatting
from utils.formatting import (
    truncate_text,
    extract_snippet,
    highlight_terms,
    highlighted_snippet,
)

# Configuration
from utils.config import (
    Config,
    AppConfig,
    KnownValues,
)

# Navigation tree
from utils.tree import (
    FlatNode,
    NavNode,
    MalformedRecordError,
    build_tree,
    tree_to_dicts,
)
from utils.nav_state import (
    NavigationState,
    NodeStatus,
    replace_children,
    update_node,
)

# Search
from utils.search_merge import merge_ranked

# HTTP utilities
from utils.http import (
    RetryStrategy,
    SessionManager,
)

__all__ = [
    # Patterns
    "FTS5_SPECIAL_CHARS",
    "ISO_DATE",
    "NUMBER_CHUNKS",
    "PATH_SEGMENT",
    "PURE_INTEGER",
    "SEARCHABLE_TERM",
    # Strings
    "escape_like",
    "normalize_regulation_path",
    "normalize_whitespace",
    "sanitize_fts5_query",
    # Database
    "init_pragmas",
    "batch_insert",
    "get_table_count",
    "table_exists",
    "create_fts5_index",
    "disable_fts5_triggers",
    "enable_fts5_triggers",
    "query_to_dicts",
    # Formatting
    "truncate_text",
    "extract_snippet",
    "highlight_terms",
    "highlighted_snippet",
    # Config
    "Config",
    "AppConfig",
    "KnownValues",
    # Tree
    "FlatNode",
    "NavNode",
    "MalformedRecordError",
    "build_tree",
    "tree_to_dicts",
    "NavigationState",
    "NodeStatus",
    "replace_children",
    "update_node",
    # Search
    "merge_ranked",
    # HTTP
    "RetryStrategy",
    "SessionManager",
]
