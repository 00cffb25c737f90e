"""Response models for control interface calls."""
from datetime import datetime
from typing import Dict, Optional

from pydantic import Field, field_validator

from .requests import WireModel


class CrawlStatusResponse(WireModel):
    """Session snapshot returned by start, pause, resume, stop and status."""

    session_id: str = Field(..., description="Opaque session identifier")
    status: Optional[str] = None
    start_url: Optional[str] = None
    base_domain: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_pages: Optional[int] = None
    total_flows: Optional[int] = None
    total_extracted: Optional[int] = None
    total_downloaded: Optional[int] = None
    total_external_urls: Optional[int] = None
    message: Optional[str] = None

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, value):
        # The server issues numeric ids; the monitor treats them as opaque strings.
        if isinstance(value, int):
            return str(value)
        return value


# The start call answers with the same snapshot shape.
StartResponse = CrawlStatusResponse


class ExportResponse(WireModel):
    """Files produced by an export, keyed by format."""

    files: Dict[str, str] = Field(default_factory=dict)
