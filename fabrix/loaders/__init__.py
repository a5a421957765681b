from .supabase_loader import (
    ProductStore,
    SaveResult,
    SupabaseProductStore,
    SupabaseProfileStore,
    upsert_product,
)

__all__ = [
    "ProductStore",
    "SaveResult",
    "SupabaseProductStore",
    "SupabaseProfileStore",
    "upsert_product",
]
