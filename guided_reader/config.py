"""Configuration constants, DOM identifiers, and .env loading.

WHY: The overlay engine, the selection controller and the HTTP service all
need to agree on the same class names, element ids and limits. Keeping them
in one module makes them easy to find and override without touching logic.

HOW: python-dotenv loads the .env file on import. Tunables are read from
environment variables with typed fallbacks; markup identifiers are plain
module-level strings.

RULES:
- SELECTION_LIMIT caps the stripped length of a selection (default 90)
- AFFORDANCE_OFFSET_PX lifts the annotate button above the selection (default 30)
- Numeric overrides that do not parse raise ValueError naming the variable
- Markup identifiers are constants, not environment driven, because the
  stylesheets that target them ship with the frontend
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the process is started)
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError("{} must be an integer, got '{}'".format(name, raw))


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError("{} must be a number, got '{}'".format(name, raw))


# ---------------------------------------------------------------------------
# Selection behaviour
# ---------------------------------------------------------------------------

SELECTION_LIMIT = _int_env("GUIDED_READER_SELECTION_LIMIT", 90)
"""Maximum number of characters (after stripping) a selection may span."""

AFFORDANCE_OFFSET_PX = _float_env("GUIDED_READER_AFFORDANCE_OFFSET_PX", 30.0)
"""Vertical distance of the annotate button above the selection's top edge."""

# ---------------------------------------------------------------------------
# Markup identifiers shared with the frontend stylesheets
# ---------------------------------------------------------------------------

CONTENT_CONTAINER_ID = "text_content"
ANNOTATION_SURFACE_ID = "annotation"
AFFORDANCE_ID = "annotate_button"

PLAIN_ID_PREFIX = "plain-text-"
ANNOTATED_ID_PREFIX = "annotated-text-"
ANNOTATED_CLASS = "annotated_text"
HIGHLIGHT_CLASS = "highlighted_text"

# Elements that delimit a "direct content container" for selections.
BLOCK_CONTAINER_TAGS = frozenset({"div"})

# ---------------------------------------------------------------------------
# Text API / service defaults
# ---------------------------------------------------------------------------

READER_API_BASE_URL = os.getenv("GUIDED_READER_API_BASE_URL", "http://localhost:8080")
REQUEST_TIMEOUT_S = _float_env("GUIDED_READER_REQUEST_TIMEOUT_S", 5.0)
SESSION_TTL_S = _int_env("GUIDED_READER_SESSION_TTL_S", 3600)


def load_api_key() -> str | None:
    """Load the optional text API key from the environment.

    WHY: Public deployments of the text API are open, private ones expect
    a client key. The key must never be hardcoded.

    RULES:
    - Returns None when GUIDED_READER_API_KEY is unset or blank
    """
    key = os.getenv("GUIDED_READER_API_KEY", "").strip()
    return key or None
