"""
marginalia.constants — Shared Constants & Helpers
==================================================

Single source of truth for page sizes, capacity defaults and field allow
lists.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Pagination defaults (overridable via config.yaml ``pagination``)
# ---------------------------------------------------------------------------
PAGE_SIZE_DISCUSSIONS = 6
PAGE_SIZE_STORIES = 6
PAGE_SIZE_FEED = 5
PAGE_SIZE_NOTES = 20
PAGE_SIZE_SEARCH = 10

# Newest-N caps for aggregated views
HOME_RECENT_STORIES = 10
PARTICIPANT_PREVIEW = 5

# ---------------------------------------------------------------------------
# Discussions
# ---------------------------------------------------------------------------
DEFAULT_MAX_PARTICIPANTS = 10

# ---------------------------------------------------------------------------
# Update allow lists
# ---------------------------------------------------------------------------
ALLOWED_STORY_FIELDS: set[str] = {"title", "content", "category", "image_urls"}


def page_offset(page: int, size: int) -> int:
    """Zero-based *page* → row offset.  Negative pages clamp to the first."""
    return max(0, page) * size
