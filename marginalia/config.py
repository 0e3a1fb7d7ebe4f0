"""
marginalia.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for site identity and tuning knobs (page sizes,
discussion capacity defaults).  Secrets (``DATABASE_URL``, ``JWT_SECRET``)
never live here; they come from the environment / ``.env``.

Usage::

    from marginalia.config import load_config, resolve_config

    cfg = load_config()          # reads ./config.yaml by default
    cfg = resolve_config()       # $MARGINALIA_CONFIG, else defaults if absent
    print(cfg.site_name)         # "Marginalia"
    print(cfg.pagination.stories)  # 6
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from marginalia.constants import (
    DEFAULT_MAX_PARTICIPANTS,
    PAGE_SIZE_DISCUSSIONS,
    PAGE_SIZE_FEED,
    PAGE_SIZE_NOTES,
    PAGE_SIZE_SEARCH,
    PAGE_SIZE_STORIES,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PaginationConfig:
    """Page sizes for the paginated list endpoints."""

    discussions: int = PAGE_SIZE_DISCUSSIONS
    stories: int = PAGE_SIZE_STORIES
    feed: int = PAGE_SIZE_FEED
    notes: int = PAGE_SIZE_NOTES
    search: int = PAGE_SIZE_SEARCH


@dataclass(frozen=True, slots=True)
class DiscussionConfig:
    """Discussion participation tuning."""

    # Capacity applied when a discussion is created with a falsy (0) capacity
    default_max_participants: int = DEFAULT_MAX_PARTICIPANTS
    # Re-count approved seats when the author approves a pending request
    recheck_capacity_on_approve: bool = False


@dataclass(frozen=True, slots=True)
class MarginaliaConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str
    site_tagline: str

    # API
    api_port: int

    # Optional sections
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    discussions: DiscussionConfig = field(default_factory=DiscussionConfig)


DEFAULT_CONFIG = MarginaliaConfig(
    site_name="Marginalia",
    site_tagline="Read together.",
    api_port=8000,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MarginaliaConfig:
    """Read *path* and return a :class:`MarginaliaConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    pages = raw.get("pagination") or {}
    disc = raw.get("discussions") or {}

    return MarginaliaConfig(
        site_name=raw["site_name"],
        site_tagline=raw["site_tagline"],
        api_port=int(raw["api_port"]),
        pagination=PaginationConfig(
            discussions=int(pages.get("discussions", PAGE_SIZE_DISCUSSIONS)),
            stories=int(pages.get("stories", PAGE_SIZE_STORIES)),
            feed=int(pages.get("feed", PAGE_SIZE_FEED)),
            notes=int(pages.get("notes", PAGE_SIZE_NOTES)),
            search=int(pages.get("search", PAGE_SIZE_SEARCH)),
        ),
        discussions=DiscussionConfig(
            default_max_participants=int(
                disc.get("default_max_participants", DEFAULT_MAX_PARTICIPANTS)
            ),
            recheck_capacity_on_approve=bool(
                disc.get("recheck_capacity_on_approve", False)
            ),
        ),
    )


def resolve_config(path: str | Path | None = None) -> MarginaliaConfig:
    """Load *path*, or ``$MARGINALIA_CONFIG`` / ``config.yaml`` when omitted.

    A missing file is not an error here: the built-in
    :data:`DEFAULT_CONFIG` is returned instead.
    """
    config_path = Path(path or os.getenv("MARGINALIA_CONFIG", "config.yaml"))
    if not config_path.exists():
        logger.warning("%s not found — running with built-in defaults", config_path)
        return DEFAULT_CONFIG
    return load_config(config_path)
