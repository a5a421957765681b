"""
Input validation for analysis text and product save payloads.

Product validation accumulates every problem instead of stopping at the
first one, so a client can fix a payload in a single round trip.
"""

import math
from typing import Any, Optional
from urllib.parse import urlparse

from config.settings import StorageConfig, config

from ..errors import InvalidInput
from .product_transformer import GRADE_VALUES, MAX_FIBER_NAME_LENGTH


def validate_text(text: Any, max_length: Optional[int] = None) -> str:
    """
    Validate text destined for the extraction call.

    No HTML escaping here: the text goes to the model, not to a page.

    Returns:
        The trimmed text

    Raises:
        InvalidInput: text is not a string, is blank, or is too long
    """
    if max_length is None:
        max_length = config.extraction.max_text_length

    if not text or not isinstance(text, str):
        raise InvalidInput("Text must be a non-empty string")

    trimmed = text.strip()
    if not trimmed:
        raise InvalidInput("Text cannot be empty")

    if len(trimmed) > max_length:
        raise InvalidInput(f"Text too long (max {max_length:,} characters)")

    return trimmed


def is_valid_url(value: Any) -> bool:
    """Absolute http(s)/ftp URL with an explicit scheme and a host."""
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https", "ftp"):
        return False
    host = parsed.hostname or ""
    return "." in host or host == "localhost"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_fiber_list(field_name: str, fibers: list, errors: list[str]) -> None:
    for index, fiber in enumerate(fibers):
        prefix = f"{field_name}[{index}]"
        if not isinstance(fiber, dict):
            errors.append(f"{prefix}: fiber must be an object")
            continue

        name = fiber.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{prefix}: fiber name must be a non-empty string")
        elif len(name.strip()) > MAX_FIBER_NAME_LENGTH:
            errors.append(
                f"{prefix}: fiber name too long (max {MAX_FIBER_NAME_LENGTH} characters)"
            )

        percentage = fiber.get("percentage")
        if not _is_number(percentage) or not math.isfinite(percentage):
            errors.append(f"{prefix}: percentage must be a valid number")
        elif percentage < 0:
            errors.append(f"{prefix}: percentage cannot be negative")
        elif percentage > 100:
            errors.append(f"{prefix}: percentage cannot exceed 100")


def validate_product_data(
    data: Any, storage_config: Optional[StorageConfig] = None
) -> list[str]:
    """
    Validate a product save payload.

    Args:
        data: Decoded JSON body
        storage_config: Title/brand limits (defaults to config.storage)

    Returns:
        Ordered list of error messages; empty means valid
    """
    if not isinstance(data, dict):
        return ["Product data must be an object"]

    cfg = storage_config or config.storage

    errors: list[str] = []

    if not is_valid_url(data.get("url")):
        errors.append("Invalid or missing URL")

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        errors.append("Invalid or missing title")
    elif len(title) > cfg.max_title_length:
        errors.append(f"Title too long (max {cfg.max_title_length} characters)")

    brand = data.get("brand")
    if not isinstance(brand, str) or not brand.strip():
        errors.append("Invalid or missing brand")
    elif len(brand) > cfg.max_brand_length:
        errors.append(f"Brand too long (max {cfg.max_brand_length} characters)")

    if data.get("composition_grade") not in GRADE_VALUES:
        errors.append("Invalid composition_grade")

    fibers = data.get("fibers")
    if not isinstance(fibers, list):
        errors.append("fibers must be an array")
    else:
        _validate_fiber_list("fibers", fibers, errors)

    for section in ("lining", "trim"):
        value = data.get(section)
        if value is None:
            continue
        if not isinstance(value, list):
            errors.append(f"{section} must be an array or null")
        else:
            _validate_fiber_list(section, value, errors)

    raw_text = data.get("raw_text")
    if raw_text is not None and not isinstance(raw_text, str):
        errors.append("raw_text must be a string")

    return errors
