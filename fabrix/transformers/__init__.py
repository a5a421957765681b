from .product_transformer import (
    CompositionGrade,
    CompositionRecord,
    FiberEntry,
    OtherSection,
    ProductRecord,
    ProductTransformer,
)
from .validation import validate_product_data, validate_text

__all__ = [
    "CompositionGrade",
    "CompositionRecord",
    "FiberEntry",
    "OtherSection",
    "ProductRecord",
    "ProductTransformer",
    "validate_product_data",
    "validate_text",
]
