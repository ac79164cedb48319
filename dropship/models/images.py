"""Downloaded image models."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DownloadedImage(BaseModel):
    """Raw image bytes plus sniffed metadata."""

    model_config = ConfigDict(frozen=True)

    url: str
    content: bytes = Field(repr=False)
    content_type: str = "image/jpeg"
    size: int = Field(..., ge=0)
    width: Optional[int] = None
    height: Optional[int] = None


class ImageMetadata(BaseModel):
    """Result of a HEAD request against an image URL."""

    url: str
    content_type: Optional[str] = None
    size: Optional[int] = None
