"""
Pydantic schemas for page content and LLM tool payloads.

The generator validates every tool payload through these models before any
of it reaches the database, so the rest of the pipeline can rely on:
- question and answer being non-empty
- cross_links and media_links being lists of strings
- media links being absolute http(s) URLs
"""

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


# ========================================
# Page Content
# ========================================


class PageContent(BaseModel):
    """A fetched Wikipedia page."""

    title: str = Field(..., description="Canonical page title")
    html: str = Field(..., description="Rendered page body")
    last_updated: Optional[str] = Field(None, description="Last revision timestamp (ISO 8601)")
    images: List[str] = Field(default_factory=list, description="Absolute image URLs in page order")


# ========================================
# FAQ Items
# ========================================


def _clean_media_link(item: Any) -> Optional[str]:
    if isinstance(item, dict):
        item = item.get("url") or item.get("media")
    if not isinstance(item, str):
        return None
    link = item.strip()
    if link.lower().startswith("url:"):
        link = link[4:].strip()
    if link.startswith("//"):
        link = "https:" + link
    if not link.startswith(("https://", "http://")):
        return None
    return link


class FaqItem(BaseModel):
    """One generated question/answer pair."""

    model_config = ConfigDict(str_strip_whitespace=True)

    subheader: Optional[str] = None
    question: str
    answer: str
    cross_links: List[str] = Field(default_factory=list)
    media_links: List[str] = Field(default_factory=list)

    @field_validator("question", "answer")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("subheader", mode="before")
    @classmethod
    def blank_subheader_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("cross_links", mode="before")
    @classmethod
    def coerce_cross_links(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            # A bare string is one title per line; titles can hold commas
            v = v.splitlines()
        return [str(link).strip() for link in v if isinstance(link, str) and link.strip()]

    @field_validator("media_links", mode="before")
    @classmethod
    def coerce_media_links(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        links = []
        for item in v:
            link = _clean_media_link(item)
            if link and link not in links:
                links.append(link)
        return links


def _validate_items(raw: Any, field: str) -> List[FaqItem]:
    """Validate each item independently, dropping the ones that fail."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{field} must be a list")

    items = []
    for index, entry in enumerate(raw):
        if isinstance(entry, FaqItem):
            items.append(entry)
            continue
        try:
            items.append(FaqItem.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping invalid {field}[{index}]: {e.errors()[0]['msg']}")
    return items


# ========================================
# Tool Payloads
# ========================================


class FirstPassResult(BaseModel):
    """Payload of the ``generate_structured_faqs`` tool."""

    title: str
    human_readable_name: Optional[str] = None
    last_updated: Optional[str] = None
    faqs: List[FaqItem]

    @field_validator("faqs", mode="before")
    @classmethod
    def validate_faqs(cls, v: Any) -> List[FaqItem]:
        return _validate_items(v, "faqs")

    @field_validator("human_readable_name", mode="before")
    @classmethod
    def blank_name_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class SecondPassResult(BaseModel):
    """Payload of the ``generate_additional_faqs`` tool."""

    title: Optional[str] = None
    human_readable_name: Optional[str] = None
    last_updated: Optional[str] = None
    additional_faqs: List[FaqItem] = Field(default_factory=list)

    @field_validator("additional_faqs", mode="before")
    @classmethod
    def validate_additional_faqs(cls, v: Any) -> List[FaqItem]:
        return _validate_items(v, "additional_faqs")
