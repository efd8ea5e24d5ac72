"""Data models for text-to-speech chunking."""

from enum import Enum

from pydantic import BaseModel, Field


class ChunkKind(str, Enum):
    """Granularity of a speakable chunk."""

    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"


class TextChunk(BaseModel):
    """One speakable unit with its offset into the normalized source text."""

    text: str
    start_position: int = Field(ge=0)
    kind: ChunkKind = ChunkKind.PARAGRAPH

    @property
    def end_position(self) -> int:
        return self.start_position + len(self.text)
