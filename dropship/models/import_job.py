"""Import job and import result models."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from dropship.models.pipeline import ExtractionResult
from dropship.models.pricing import CategoryPricing, PricePreview
from dropship.models.stock import RecommendedAction


class ImportJobStatus(str, Enum):
    """Import job lifecycle.

    State transitions (forward only):
    - pending -> processing
    - pending -> failed (cancelled before start)
    - processing -> completed
    - processing -> failed
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED)

    def can_move_to(self, target: "ImportJobStatus") -> bool:
        return target in _NEXT_STATUSES[self]


_NEXT_STATUSES = {
    ImportJobStatus.PENDING: {ImportJobStatus.PENDING, ImportJobStatus.PROCESSING, ImportJobStatus.FAILED},
    ImportJobStatus.PROCESSING: {ImportJobStatus.PROCESSING, ImportJobStatus.COMPLETED, ImportJobStatus.FAILED},
    ImportJobStatus.COMPLETED: set(),
    ImportJobStatus.FAILED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportJob(BaseModel):
    """Pollable record of one asynchronous import run."""

    job_id: str
    owner_id: str
    status: ImportJobStatus = ImportJobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    step: str = "Queued"
    url: Optional[str] = None
    category_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def to_json(self) -> str:
        """Serialize to JSON string for Redis storage."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "ImportJob":
        """Deserialize from JSON string."""
        return cls.model_validate_json(data)


class ImportOverrides(BaseModel):
    """Operator-supplied values that replace scraped ones on import."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    slug: Optional[str] = Field(default=None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    publish: bool = False


class ImportResult(BaseModel):
    success: bool
    product_id: Optional[str] = None
    product_slug: Optional[str] = None
    product_source_id: Optional[str] = None
    retail_price: Optional[Decimal] = None
    error: Optional[str] = None


class ImportPreview(ExtractionResult):
    """Extraction result enriched with operator triage hints."""

    health_score: Optional[int] = None
    recommended_action: Optional[RecommendedAction] = None
    already_imported: bool = False
    category_pricing: Optional[CategoryPricing] = None
    pricing: Optional[PricePreview] = None
    warnings: List[str] = Field(default_factory=list)
