"""
Feed source definitions.

Platform identities and the per-source configuration handed to the
aggregator.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


class SourceType(str, Enum):
    """Platform identity of a product record."""
    MYDROP = "MYDROP"
    EASYDROP = "EASYDROP"
    CSV_FILE = "CSV_FILE"
    XML_FILE = "XML_FILE"
    CUSTOM_API = "CUSTOM_API"
    MANUAL_ENTRY = "MANUAL_ENTRY"

    @property
    def display_name(self) -> str:
        """Human readable platform name."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    SourceType.MYDROP: "MyDrop",
    SourceType.EASYDROP: "EasyDrop",
    SourceType.CSV_FILE: "CSV File",
    SourceType.XML_FILE: "XML File",
    SourceType.CUSTOM_API: "Custom API",
    SourceType.MANUAL_ENTRY: "Manual Entry",
}


class DataSourceConfig(BaseModel):
    """
    Configuration of a single feed source.

    Attributes:
        platform_type: Which feed schema the source speaks.
        url: Feed URL.
        headers: Extra HTTP headers sent verbatim with the request.
        export_unavailable: Keep products that are not available; when
            false only available products are passed on.
        name: Optional label used in logs.
    """
    platform_type: SourceType
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    export_unavailable: bool = True
    name: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only http(s) feeds can be fetched."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def default_headers(cls, v):
        """Treat a missing header map as empty."""
        return v or {}

    @property
    def label(self) -> str:
        """Name used to identify the source in logs and errors."""
        return self.name or self.url


@dataclass(frozen=True)
class RawFeedDocument:
    """
    Feed document as retrieved from its source.

    Attributes:
        url: URL the document was fetched from.
        content: Document text.
        headers: Request headers that were sent.
        status_code: HTTP status of the successful response.
        fetched_at: Retrieval time.
    """
    url: str
    content: str
    headers: Dict[str, str] = field(default_factory=dict)
    status_code: int = 200
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __hash__(self) -> int:
        return hash((self.url, self.fetched_at))

    @property
    def is_empty(self) -> bool:
        return not self.content or not self.content.strip()
