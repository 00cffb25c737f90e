"""Request models for control interface calls."""
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SelectorType(str, Enum):
    """Selector language of an extraction rule."""

    CSS = "CSS"
    XPATH = "XPATH"


class ExportFormat(str, Enum):
    """Export file formats supported by the control interface."""

    JSON = "JSON"
    CSV = "CSV"
    EXCEL = "EXCEL"
    PDF = "PDF"


class WireModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump the model as a camelCase JSON-compatible dict."""
        return self.model_dump(mode="json", by_alias=True)


class ExtractionRule(WireModel):
    """A named selector whose matches are extracted from every crawled page."""

    rule_name: str = Field(..., min_length=1, description="Rule display name")
    selector_type: SelectorType = Field(default=SelectorType.CSS)
    selector_value: str = Field(..., min_length=1, description="CSS or XPath expression")
    attribute_to_extract: str = Field(
        default="text", description="Attribute to read (text, href, src, ...)"
    )

    @field_validator("rule_name", "selector_value")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("selector_type", mode="before")
    @classmethod
    def _upper_selector_type(cls, value):
        if isinstance(value, str):
            return value.upper()
        return value


class CrawlConfig(WireModel):
    """Configuration used to start a crawl session."""

    start_url: str = Field(..., min_length=1, description="URL the crawl starts from")
    max_depth: int = Field(default=0, ge=0, le=50, description="0 means unbounded")
    max_pages: int = Field(default=0, ge=0, le=10000, description="0 means unbounded")
    request_delay: float = Field(default=1.0, ge=0, description="Delay between requests (s)")
    concurrent_threads: int = Field(default=5, ge=1, le=20)
    download_files: bool = True
    enable_java_script: bool = Field(default=False, alias="enableJavaScript")
    cookies: Dict[str, str] = Field(default_factory=dict)
    extraction_rules: List[ExtractionRule] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "startUrl": "https://example.com",
                "maxDepth": 3,
                "maxPages": 500,
                "requestDelay": 1.0,
                "concurrentThreads": 5,
                "downloadFiles": True,
                "enableJavaScript": False,
                "cookies": {"JSESSIONID": "abc123"},
                "extractionRules": [
                    {
                        "ruleName": "Headings",
                        "selectorType": "CSS",
                        "selectorValue": "h1",
                        "attributeToExtract": "text",
                    }
                ],
            }
        }
    )

    @field_validator("start_url")
    @classmethod
    def _start_url_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Start URL is required")
        return value

    @property
    def unbounded_depth(self) -> bool:
        return self.max_depth == 0

    @property
    def unbounded_pages(self) -> bool:
        return self.max_pages == 0


class ExportRequest(WireModel):
    """Request body for exporting a session's results."""

    formats: List[ExportFormat] = Field(..., min_length=1)
    include_pages: bool = True
    include_flows: bool = True
    include_extracted_data: bool = True
    include_downloaded_files: bool = True

    @field_validator("formats", mode="before")
    @classmethod
    def _upper_formats(cls, value):
        if isinstance(value, (list, tuple)):
            return [v.upper() if isinstance(v, str) else v for v in value]
        return value
