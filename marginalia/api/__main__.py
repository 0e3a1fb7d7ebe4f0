"""
marginalia.api.__main__ — Entry point for ``python -m marginalia.api``
=======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings) for the listen port.
3. Configure logging and hand the app to uvicorn.

Run with::

    uv run python -m marginalia.api
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from marginalia.config import resolve_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("marginalia")


def main() -> None:
    """Bootstrap and run the Marginalia API."""
    load_dotenv()

    cfg = resolve_config()

    logger.info("Starting %s API on port %d", cfg.site_name, cfg.api_port)
    uvicorn.run(
        "marginalia.api.main:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=cfg.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
