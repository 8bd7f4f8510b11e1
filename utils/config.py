"""Configuration management utilities for eCFR Analyzer tools.

Provides:
- A small ``Config`` base class that reports its public settings
- ``AppConfig`` for the API server, populated from environment variables
- ``KnownValues`` holding the canonical CFR hierarchy vocabulary
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional


class Config:
    """Base configuration class for organizing application settings."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all public config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}


class KnownValues:
    """Container for the CFR hierarchy vocabulary."""

    # Hierarchy levels, outermost first.  Position is the sibling sort rank.
    LEVEL_TYPES = (
        "title",
        "chapter",
        "subchapter",
        "part",
        "subpart",
        "section",
        "appendix",
    )

    # Labels used when rendering breadcrumbs
    LEVEL_LABELS = {
        "title": "Title",
        "chapter": "Chapter",
        "subchapter": "Subchapter",
        "part": "Part",
        "subpart": "Subpart",
        "section": "Section",
        "appendix": "Appendix",
    }

    # Columns the agencies listing may be ordered by
    AGENCY_SORT_COLUMNS = frozenset({
        "name",
        "num_cfr",
        "num_children",
        "num_sections",
        "num_words",
        "num_corrections",
    })

    @classmethod
    def is_valid_level_type(cls, level_type: str) -> bool:
        """Check if level type is part of the known hierarchy."""
        return level_type.lower() in cls.LEVEL_TYPES

    @classmethod
    def get_level_label(cls, level_type: Optional[str]) -> str:
        """Return the breadcrumb label for a level type.

        Unknown level types are capitalized as-is; empty input gives "".
        """
        if not level_type:
            return ""
        return cls.LEVEL_LABELS.get(level_type.lower(), level_type.capitalize())


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have defaults so the application works out of the box.

    Environment variables:
        APP_DB_PATH: Path to the SQLite store (default: ecfr.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        SEARCH_RESULT_LIMIT: Default ceiling for merged search results (default: 50)
        NAV_MAX_LEVELS: Deepest ``levels`` value the navigation endpoint accepts (default: 6)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(os.getenv("APP_DB_PATH", "ecfr.sqlite"))
        self.api_port = int(os.getenv("APP_PORT", "8000"))
        self.api_host = os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.search_result_limit = int(os.getenv("SEARCH_RESULT_LIMIT", "50"))
        self.nav_max_levels = int(os.getenv("NAV_MAX_LEVELS", "6"))

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
