"""Text API response dataclasses.

WHY: The text API returns a loosely shaped JSON envelope
({"status": ..., "message": [...]}) whose text objects bundle the raw text,
its annotations and optional narration audio. Typed dataclasses keep the
session code free of dict lookups and make missing fields explicit.

HOW: One dataclass per JSON object with a from_dict() factory. Annotation
dicts are parsed straight into the core AnnotationInterval.

RULES:
- audio is None when a text has no narration
- Annotation intervals inherit the text's id as their text_id
- Unknown fields are ignored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from guided_reader.core.ir import AnnotationInterval


@dataclass
class AudioInfo:
    """Narration attached to a text: the audio file and its caption track."""

    id: int
    audio_file: str
    vtt_file: str
    submission_group: str = ""
    submission_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> AudioInfo:
        return cls(
            id=int(data.get("id", -1)),
            audio_file=data.get("audio_file", ""),
            vtt_file=data.get("vtt_file", ""),
            submission_group=data.get("submission_group") or "",
            submission_url=data.get("submission_url") or "",
        )


@dataclass
class TextPayload:
    """One text in one language, as returned by /api/text?type=all.

    RULES:
    - id identifies the text version; text_object_id groups its languages
    - text may contain inline HTML and is not yet normalized
    """

    id: int
    text: str
    language: str
    text_object_id: int
    audio: Optional[AudioInfo] = None
    annotations: List[AnnotationInterval] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> TextPayload:
        text_id = int(data.get("id", -1))
        audio = data.get("audio")
        return cls(
            id=text_id,
            text=data.get("text", ""),
            language=data.get("language", ""),
            text_object_id=int(data.get("text_object_id", -1)),
            audio=AudioInfo.from_dict(audio) if audio else None,
            annotations=[
                AnnotationInterval.from_dict(item, text_id=text_id)
                for item in data.get("annotations") or []
            ],
        )
