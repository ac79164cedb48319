"""Request and response bodies for the admin API."""
from typing import Optional

from pydantic import BaseModel, Field

from dropship.models import FulfillmentStatus, ImportOverrides


class ImportRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048, description="Supplier listing URL")
    category_id: Optional[str] = None
    overrides: Optional[ImportOverrides] = None


class ImportJobAccepted(BaseModel):
    job_id: str


class StatusUpdateRequest(BaseModel):
    status: FulfillmentStatus


class TrackingRequest(BaseModel):
    tracking_number: str
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class PlacedRequest(BaseModel):
    supplier_order_id: str


class ShippedRequest(BaseModel):
    tracking_number: str
    carrier: Optional[str] = None


class IssueRequest(BaseModel):
    description: str
