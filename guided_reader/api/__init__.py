"""Text API client package: async HTTP access to texts and caption tracks.

WHY: Sessions load texts, refresh annotations and fetch caption tracks
from the backend. This package keeps every HTTP detail in one place.

HOW: ReaderClient wraps httpx.AsyncClient; responses are parsed into the
dataclasses in models.py.

RULES:
- All backend HTTP calls go through ReaderClient
- Failures surface as ReaderAPIError or httpx.HTTPError
"""

from guided_reader.api.client import ReaderAPIError, ReaderClient
from guided_reader.api.models import AudioInfo, TextPayload

__all__ = ["AudioInfo", "ReaderAPIError", "ReaderClient", "TextPayload"]
