"""Engine-wide tunable limits."""

from pydantic import BaseModel, ConfigDict, Field


class EngineSettings(BaseModel):
    """Limits and fallbacks shared by parsers and the TTS splitter.

    Constructed once by the caller and passed down explicitly; nothing in the
    engine reads settings from global state.
    """

    model_config = ConfigDict(frozen=True)

    # MOBI/AZW
    max_text_records: int = Field(default=50, gt=1)
    max_record_size: int = Field(default=1024 * 1024, gt=0)
    exth_offset: int = Field(default=232, ge=0)

    # Sniffing
    fb2_sniff_bytes: int = Field(default=1000, gt=0)
    sniff_prefix_size: int = Field(default=4096, ge=68)

    # TTS
    max_chunk_size: int = Field(default=4000, gt=0)

    # Fallbacks
    default_author: str = "Unknown"
    fallback_title: str = "Untitled"


DEFAULT_SETTINGS = EngineSettings()
