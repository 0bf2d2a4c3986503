"""Async HTTP client for the text API and caption resources.

WHY: A reader session needs three things from the backend: the text
itself (with its annotations and narration), a fresh annotation list after
an annotation is created, and the caption track for the narration. This
module hides the endpoint shapes and the response envelope behind one
client class so the session only deals with typed results.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. ReaderClient is an async
context manager: enter it to open the connection pool, exit to close it.
All text requests go to GET /api/text with text_object_id, language and a
type of "all" or "annotations". Caption tracks are fetched by URL, which
may be absolute or relative to the API base.

RULES:
- Always use the async context manager (async with ReaderClient(...) as client:)
- Requests time out after REQUEST_TIMEOUT_S (5s by default)
- Non-2xx responses and malformed envelopes raise ReaderAPIError
- Network failures propagate as httpx.HTTPError; callers decide policy
- An optional API key is sent as a Bearer token
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from guided_reader.api.models import TextPayload
from guided_reader.config import READER_API_BASE_URL, REQUEST_TIMEOUT_S, load_api_key
from guided_reader.core.ir import AnnotationInterval

logger = logging.getLogger(__name__)

_TEXT_ENDPOINT = "/api/text"
TYPE_ALL = "all"
TYPE_ANNOTATIONS = "annotations"


class ReaderAPIError(Exception):
    """Raised when the text API returns an error or an unusable response.

    WHY: Callers need a typed exception to tell API failures apart from
    network errors, so a session can degrade to "nothing rendered" instead
    of crashing.

    RULES:
    - Always include status_code and message
    - status_code is the HTTP status, or 200 for a bad envelope on a 200
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Text API error {status_code}: {message}")


class ReaderClient:
    """Async client for texts, annotations and caption tracks.

    RULES:
    - base_url defaults to READER_API_BASE_URL from config
    - api_key defaults to load_api_key(); no header is sent when absent
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or READER_API_BASE_URL).rstrip("/")
        self._api_key = api_key or load_api_key()
        self._timeout = timeout if timeout is not None else REQUEST_TIMEOUT_S
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> ReaderClient:
        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "ReaderClient must be used as an async context manager: "
                "async with ReaderClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Text API
    # ------------------------------------------------------------------

    async def _get_text_envelope(self, text_object_id: int, language: str, data_type: str) -> dict:
        client = self._ensure_client()
        resp = await client.get(
            _TEXT_ENDPOINT,
            params={"text_object_id": text_object_id, "language": language, "type": data_type},
        )
        if resp.status_code != 200:
            raise ReaderAPIError(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise ReaderAPIError(resp.status_code, "response is not JSON")
        if not isinstance(data, dict):
            raise ReaderAPIError(resp.status_code, "unexpected response envelope")
        return data

    async def fetch_text(self, text_object_id: int, language: str) -> TextPayload:
        """Fetch a text with its annotations and narration metadata.

        Args:
            text_object_id: Id shared by all language versions of the text.
            language: Language code of the version to fetch.

        Returns:
            The first text object in the response.

        Raises:
            ReaderAPIError: non-200 status, status != "ok" or no text.
        """
        data = await self._get_text_envelope(text_object_id, language, TYPE_ALL)
        message = data.get("message")
        if data.get("status") != "ok" or not isinstance(message, list) or not message:
            raise ReaderAPIError(200, "invalid response format")
        payload = TextPayload.from_dict(message[0])
        logger.info("Fetched text %d (%s): %d chars, %d annotations",
                    payload.id, payload.language, len(payload.text), len(payload.annotations))
        return payload

    async def fetch_annotations(
        self,
        text_object_id: int,
        language: str,
        text_id: Optional[int] = None,
    ) -> List[AnnotationInterval]:
        """Fetch the current annotation intervals of a text.

        RULES:
        - The annotation list is read from "message" regardless of "status"
        - A missing message means no annotations
        """
        data = await self._get_text_envelope(text_object_id, language, TYPE_ANNOTATIONS)
        message = data.get("message") or []
        if not isinstance(message, list):
            raise ReaderAPIError(200, "annotation list expected")
        return [AnnotationInterval.from_dict(item, text_id=text_id) for item in message]

    async def fetch_caption_track(self, url: str) -> str:
        """Download a caption resource and return its text."""
        client = self._ensure_client()
        resp = await client.get(url)
        if resp.status_code != 200:
            raise ReaderAPIError(resp.status_code, resp.text)
        return resp.text
