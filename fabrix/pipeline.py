"""
Composition service orchestrating selection, extraction, grading and storage.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from rich.console import Console

from config.settings import AppConfig, config

from .ai.composition_extractor import CompositionExtractor
from .ai.composition_policy import CompositionPolicyResult
from .errors import QuotaExceeded, ValidationFailed
from .extractors.page_extractor import PageSnapshot, PageTextCollector, brand_from_url
from .extractors.text_selector import ScoredTextBlock, join_candidate_blocks, select_candidate_blocks
from .loaders.supabase_loader import ProductStore, SaveResult, upsert_product
from .transformers.product_transformer import ProductTransformer
from .transformers.validation import validate_product_data

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Outcome of analyzing one product page."""

    url: str
    title: str
    brand: str
    candidates: list[ScoredTextBlock] = field(default_factory=list)
    text: str = ""
    analysis: Optional[CompositionPolicyResult] = None
    saved: Optional[SaveResult] = None


class CompositionService:
    """
    Orchestrates the composition workflow.

    - Analyze: page text -> model -> policy-graded composition
    - Save: validate -> sanitize -> upsert
    - Scan: collect a page with Playwright, then analyze (and optionally save)

    The extractor and store are injected so the HTTP API, the CLI and tests
    share one code path.
    """

    def __init__(
        self,
        extractor: CompositionExtractor,
        store: Optional[ProductStore] = None,
        app_config: Optional[AppConfig] = None,
    ):
        self.config = app_config or config
        self.extractor = extractor
        self.store = store
        self.transformer = ProductTransformer(self.config.storage)

    async def analyze(self, text: Any) -> CompositionPolicyResult:
        """Extract and grade the composition in text."""
        return await self.extractor.extract(text)

    def check_quota(self, user: dict, profiles: Any) -> int:
        """
        Enforce the scan quota for one /analyze call and consume a scan.

        Args:
            user: Profile of the authenticated caller
            profiles: SupabaseProfileStore (or compatible) for flagging/usage

        Returns:
            Scans remaining after this scan

        Raises:
            QuotaExceeded: no scans left (403) or daily abuse threshold (429)
        """
        tier = user.get("subscription_tier")

        if (user.get("scans_remaining") or 0) <= 0:
            detail = (
                "Upgrade to premium for 100 scans per month"
                if tier == "free"
                else "Monthly scan limit reached. Resets on the 1st of next month."
            )
            raise QuotaExceeded(
                "No scans remaining",
                detail=detail,
                extra={"scans_remaining": 0, "subscription_tier": tier},
            )

        used_today = user.get("scans_used_today") or 0
        if used_today >= self.config.auth.daily_threshold(tier):
            profiles.flag_user(
                user["id"],
                f"Exceeded daily scan limit ({used_today} scans in one day)",
            )
            raise QuotaExceeded(
                "Daily scan limit exceeded",
                detail="Your account has been flagged for unusual activity. Please contact support.",
                status_code=429,
            )

        return profiles.consume_scan(user["id"])

    def save(self, data: Any) -> SaveResult:
        """
        Validate, sanitize and upsert a product payload.

        Raises:
            ValidationFailed: payload has field errors (all of them listed)
            PersistenceError: store failure
        """
        if self.store is None:
            raise RuntimeError("No product store configured")

        errors = validate_product_data(data, self.config.storage)
        if errors:
            logger.warning("Rejected product payload: %s", "; ".join(errors))
            raise ValidationFailed(errors)

        record = self.transformer.transform(data)
        return upsert_product(self.store, record)

    async def scan_url(
        self,
        url: str,
        collector: PageTextCollector,
        save: bool = False,
        brand: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ScanResult:
        """
        Collect a product page, select candidate text and analyze it.

        Args:
            url: Product page URL
            collector: Started PageTextCollector
            save: Also persist the graded composition
            brand: Override the hostname-derived brand
            title: Override the page title

        Returns:
            ScanResult; analysis is None when no candidate text was found
        """
        snapshot: PageSnapshot = await collector.collect(url)
        candidates = select_candidate_blocks(snapshot.blocks, self.config.selector)
        text = join_candidate_blocks(candidates, self.config.selector)

        result = ScanResult(
            url=url,
            title=title or snapshot.title or url,
            brand=brand or brand_from_url(url),
            candidates=candidates,
            text=text,
        )

        if not text:
            console.print("[yellow]No composition candidates found on page[/yellow]")
            return result

        result.analysis = await self.analyze(text)

        if save:
            payload = self.transformer.build_payload(
                result.analysis.record,
                url=url,
                title=result.title,
                brand=result.brand,
                raw_text=text,
            )
            result.saved = self.save(payload)

        return result

    async def scan_urls(
        self,
        urls: list[str],
        collector: PageTextCollector,
        save: bool = False,
        brand: Optional[str] = None,
        title: Optional[str] = None,
        delay_seconds: float = 1.0,
    ) -> list[ScanResult]:
        """Scan several pages one after another with a pause between them."""
        results = []
        for index, url in enumerate(urls):
            if index:
                await asyncio.sleep(delay_seconds)
            results.append(
                await self.scan_url(url, collector, save=save, brand=brand, title=title)
            )
        return results
