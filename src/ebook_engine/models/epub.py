"""Data models for EPUB package structure."""

from pydantic import BaseModel, Field


class ManifestItem(BaseModel):
    """One ``<item>`` of the OPF manifest."""

    id: str
    href: str
    media_type: str = ""


class SpineItem(BaseModel):
    """One ``<itemref>`` of the OPF spine."""

    idref: str
    linear: bool = True


class OpfPackage(BaseModel):
    """Everything read from the OPF file in a single pass."""

    title: str = ""
    author: str = ""
    language: str | None = None
    publisher: str | None = None
    description: str | None = None
    cover_id: str | None = None
    manifest: dict[str, ManifestItem] = Field(default_factory=dict)
    spine: list[SpineItem] = Field(default_factory=list)
