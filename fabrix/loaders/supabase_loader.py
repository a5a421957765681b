"""
Supabase loader for product compositions and user profiles.

- Product compositions -> `products` table, keyed by URL
- User profiles and scan quota -> `user_profiles` table + `increment_scan_usage` RPC
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from postgrest.exceptions import APIError
from rich.console import Console
from supabase import AuthError, Client, create_client

from config.settings import StorageConfig

from ..errors import AccessDenied, AuthenticationError, PersistenceError
from ..transformers.product_transformer import ProductRecord

console = Console()

# Columns read back when deciding whether a stored composition changed
COMPOSITION_COLUMNS = "check_count,fibers,lining,trim,composition_grade"

PROFILE_COLUMNS = "id,subscription_tier,scans_remaining,scans_used_today,is_flagged,flagged_reason"


def _error_detail(error: APIError) -> str:
    """Most useful human-readable part of a PostgREST error."""
    detail = error.message or error.hint or error.details
    if detail:
        return str(detail)
    return json.dumps(error.json())


def _create_supabase_client(storage_config: StorageConfig) -> Client:
    if not storage_config.supabase_url or not storage_config.supabase_key:
        raise ValueError(
            "Supabase credentials required. Set SUPABASE_URL and SUPABASE_KEY "
            "environment variables or pass them in StorageConfig."
        )
    return create_client(storage_config.supabase_url, storage_config.supabase_key)


# =============================================================================
# PRODUCT STORE
# =============================================================================


class ProductStore(Protocol):
    """Keyed record store for product compositions."""

    def get(self, url: str) -> Optional[dict]:
        ...

    def insert(self, row: dict) -> None:
        ...

    def patch(self, url: str, fields: dict) -> None:
        ...


class SupabaseProductStore:
    """ProductStore backed by the Supabase `products` table."""

    def __init__(
        self,
        storage_config: Optional[StorageConfig] = None,
        client: Optional[Client] = None,
    ):
        """
        Initialize the product store.

        Args:
            storage_config: Table names and credentials (defaults from env)
            client: Pre-built Supabase client; created from credentials if omitted
        """
        self.config = storage_config or StorageConfig()
        self.client: Client = client or _create_supabase_client(self.config)
        self.table = self.config.products_table

    def get(self, url: str) -> Optional[dict]:
        """Fetch the stored composition fields for a URL, or None."""
        try:
            result = (
                self.client.table(self.table)
                .select(COMPOSITION_COLUMNS)
                .eq("url", url)
                .limit(1)
                .execute()
            )
        except APIError as e:
            raise PersistenceError(_error_detail(e)) from e
        return result.data[0] if result.data else None

    def insert(self, row: dict) -> None:
        try:
            self.client.table(self.table).insert(row).execute()
        except APIError as e:
            raise PersistenceError(_error_detail(e)) from e

    def patch(self, url: str, fields: dict) -> None:
        try:
            self.client.table(self.table).update(fields).eq("url", url).execute()
        except APIError as e:
            raise PersistenceError(_error_detail(e)) from e


# =============================================================================
# UPSERT
# =============================================================================


@dataclass
class SaveResult:
    """Outcome of saving a product composition."""

    already_exists: bool
    check_count: int
    composition_changed: Optional[bool] = None

    @property
    def message(self) -> str:
        return "Already in library!" if self.already_exists else "Saved successfully!"

    @property
    def status_code(self) -> int:
        return 200 if self.already_exists else 201

    def to_dict(self) -> dict:
        """Wire format used by the browser extension."""
        body = {
            "message": self.message,
            "alreadyExists": self.already_exists,
            "checkCount": self.check_count,
        }
        if self.composition_changed is not None:
            body["compositionChanged"] = self.composition_changed
        return body


def composition_changed(stored: dict, incoming: dict) -> bool:
    """
    Field-wise structural comparison of two compositions.

    Order sensitive, and an empty list differs from null.
    """
    for key in ("fibers", "lining", "trim", "composition_grade"):
        if stored.get(key) != incoming.get(key):
            return True
    return False


def upsert_product(store: ProductStore, record: ProductRecord) -> SaveResult:
    """
    Insert a product or bump its check count.

    An existing row only gets its composition, title, brand and raw_text
    overwritten when the composition actually changed, so first-seen naming
    survives repeat saves. Not transactional: two concurrent saves of the
    same URL can lose one increment.

    Raises:
        PersistenceError: the store rejected a read or write
    """
    existing = store.get(record.url)

    if existing is None:
        row = record.to_row()
        row["check_count"] = 1
        store.insert(row)
        console.print(f"[green]✓ Saved {record.url}[/green]")
        return SaveResult(already_exists=False, check_count=1)

    check_count = (existing.get("check_count") or 0) + 1
    incoming = record.composition_fields()
    changed = composition_changed(existing, incoming)

    fields: dict[str, Any] = {"check_count": check_count}
    if changed:
        row = record.to_row()
        fields.update(incoming)
        fields.update(title=row["title"], brand=row["brand"], raw_text=row["raw_text"])

    store.patch(record.url, fields)
    console.print(
        f"[cyan]Already stored {record.url} (check #{check_count}"
        f"{', composition updated' if changed else ''})[/cyan]"
    )
    return SaveResult(already_exists=True, check_count=check_count, composition_changed=changed)


# =============================================================================
# PROFILE STORE
# =============================================================================


class SupabaseProfileStore:
    """
    Resolves bearer tokens to user profiles and tracks scan quota.

    Tokens are verified by Supabase Auth; issuing them (signup, signin) is
    handled there too.
    """

    def __init__(
        self,
        storage_config: Optional[StorageConfig] = None,
        client: Optional[Client] = None,
    ):
        self.config = storage_config or StorageConfig()
        self.client: Client = client or _create_supabase_client(self.config)
        self.table = self.config.profiles_table

    def get_user(self, token: str) -> dict:
        """
        Resolve a bearer token to the caller's profile.

        Returns:
            Profile dict (id, email, subscription_tier, scans_remaining,
            scans_used_today, is_flagged)

        Raises:
            AuthenticationError: token invalid/expired, or no profile row
            AccessDenied: account is flagged
        """
        try:
            response = self.client.auth.get_user(token)
        except AuthError as e:
            raise AuthenticationError("Invalid or expired token") from e

        if response is None or response.user is None:
            raise AuthenticationError("Invalid or expired token")

        auth_user = response.user
        try:
            result = (
                self.client.table(self.table)
                .select(PROFILE_COLUMNS)
                .eq("id", auth_user.id)
                .limit(1)
                .execute()
            )
        except APIError as e:
            raise AuthenticationError("Invalid token") from e

        if not result.data:
            raise AuthenticationError("User not found")

        user = dict(result.data[0])
        user["email"] = auth_user.email

        if user.get("is_flagged"):
            raise AccessDenied(
                "Account suspended",
                reason=user.get("flagged_reason") or "Terms of service violation",
            )

        return user

    def flag_user(self, user_id: str, reason: str) -> None:
        """Mark an account for review; flagged accounts are refused at auth."""
        try:
            self.client.table(self.table).update(
                {"is_flagged": True, "flagged_reason": reason}
            ).eq("id", user_id).execute()
        except APIError as e:
            raise PersistenceError(_error_detail(e)) from e
        console.print(f"[yellow]Flagged user {user_id}: {reason}[/yellow]")

    def consume_scan(self, user_id: str) -> int:
        """
        Record one scan for the user.

        Returns:
            Scans remaining after this one
        """
        try:
            result = self.client.rpc(
                self.config.scan_usage_rpc, {"p_user_id": user_id}
            ).execute()
        except APIError as e:
            raise PersistenceError("Failed to track scan usage", status_code=500) from e

        data = result.data
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            return 0
        return data.get("scans_remaining") or 0
