"""
Composition data model and product transformer.

The pydantic models describe what the extraction step produces and what gets
persisted; ProductTransformer turns an already-validated save payload into a
storage-safe ProductRecord (escaped, truncated text fields).
"""

import re
from enum import Enum
from typing import Any, Optional

from markupsafe import escape
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from config.settings import StorageConfig

MAX_FIBER_NAME_LENGTH = 100


class CompositionGrade(str, Enum):
    """Five-valued classification of a garment's main fiber content."""

    NATURAL = "Natural"
    SYNTHETIC = "Synthetic"
    SEMI_SYNTHETIC = "Semi-Synthetic"
    MIXED = "Mixed"
    UNKNOWN = "Unknown"


GRADE_VALUES = tuple(grade.value for grade in CompositionGrade)


class FiberEntry(BaseModel):
    """A named fiber with its mass percentage."""

    name: str = Field(min_length=1, max_length=MAX_FIBER_NAME_LENGTH)
    percentage: float = Field(ge=0, le=100, allow_inf_nan=False)

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v: Any) -> Any:
        """Collapse whitespace; an all-blank name fails min_length."""
        if isinstance(v, str):
            return re.sub(r"\s+", " ", v).strip()
        return v

    @field_validator("percentage", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("percentage must be a number")
        return v

    @field_serializer("percentage")
    def serialize_percentage(self, v: float):
        # 60.0 goes back on the wire as 60
        return int(v) if v.is_integer() else v


class OtherSection(BaseModel):
    """Auxiliary labeled section (interlining, padding, ...). Display only."""

    label: str = Field(min_length=1)
    fibers: list[FiberEntry] = Field(default_factory=list)

    @field_validator("fibers", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class CompositionRecord(BaseModel):
    """Structured result of a composition extraction."""

    model_config = ConfigDict(extra="ignore")

    fibers: list[FiberEntry] = Field(default_factory=list)
    lining: Optional[list[FiberEntry]] = None
    trim: Optional[list[FiberEntry]] = None
    other: Optional[list[OtherSection]] = None
    composition_grade: CompositionGrade = CompositionGrade.UNKNOWN

    @field_validator("fibers", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")


class ProductRecord(BaseModel):
    """Persisted product row. `other` is deliberately absent."""

    url: str
    title: str
    brand: str
    composition_grade: CompositionGrade
    fibers: list[FiberEntry] = Field(default_factory=list)
    lining: Optional[list[FiberEntry]] = None
    trim: Optional[list[FiberEntry]] = None
    raw_text: str = ""
    check_count: int = Field(default=1, ge=1)

    def composition_fields(self) -> dict:
        """Fields compared to decide whether stored composition changed."""
        data = self.model_dump(mode="json")
        return {
            "fibers": data["fibers"],
            "lining": data["lining"],
            "trim": data["trim"],
            "composition_grade": data["composition_grade"],
        }

    def to_row(self) -> dict:
        """Convert to a dictionary matching the products table."""
        return self.model_dump(mode="json")


class ProductTransformer:
    """Transforms save payloads into storage-safe product records."""

    def __init__(self, storage_config: Optional[StorageConfig] = None):
        self.config = storage_config or StorageConfig()

    def _clean_text(self, value: str, limit: int) -> str:
        """HTML-escape then truncate a user-supplied text field."""
        return str(escape(value.strip()))[:limit]

    def transform(self, data: dict) -> ProductRecord:
        """
        Sanitize a validated save payload.

        Args:
            data: Payload that already passed validate_product_data()

        Returns:
            ProductRecord with escaped title/brand and truncated raw_text
        """
        raw_text = data.get("raw_text") or ""
        if not isinstance(raw_text, str):
            raw_text = ""

        return ProductRecord(
            url=data["url"],
            title=self._clean_text(data["title"], self.config.max_title_length),
            brand=self._clean_text(data["brand"], self.config.max_brand_length),
            composition_grade=data["composition_grade"],
            fibers=data["fibers"],
            lining=data.get("lining"),
            trim=data.get("trim") or None,
            raw_text=raw_text[: self.config.max_raw_text_length],
        )

    def build_payload(
        self,
        record: CompositionRecord,
        url: str,
        title: str,
        brand: str,
        raw_text: str = "",
    ) -> dict:
        """Build a save payload from an extraction result, as the extension does."""
        data = record.to_dict()
        return {
            "url": url,
            "title": title,
            "brand": brand,
            "composition_grade": data["composition_grade"],
            "fibers": data["fibers"],
            "lining": data["lining"],
            "trim": data["trim"],
            "raw_text": raw_text,
        }
