"""
Configuration settings for the fabrix composition service.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file from project root
load_dotenv(Path(__file__).parent.parent / ".env")


@dataclass
class SelectorConfig:
    """Configuration for candidate-text selection on product pages."""

    max_blocks: int = 3  # Top-scoring blocks sent to the model
    max_block_length: int = 2000  # Longer DOM blocks are whole-page wrappers
    separator: str = "\n\n---\n\n"
    max_text_length: int = 20000


@dataclass
class ScraperConfig:
    """Configuration for the page-text collector."""

    headless: bool = True  # Set to False for debugging
    viewport_width: int = 1280
    viewport_height: int = 800
    timeout_ms: int = 30000
    settle_seconds: float = 1.0  # Wait after expanding <details> sections

    user_agents: list = field(
        default_factory=lambda: [
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
        ]
    )


@dataclass
class ExtractionConfig:
    """Configuration for the LLM extraction call."""

    provider: str = field(
        default_factory=lambda: os.getenv("EXTRACTION_PROVIDER", "openai")
    )  # "openai" or "ollama"
    openai_model: str = "gpt-4o-mini"
    ollama_model: str = "llama3.1"
    ollama_base_url: str = field(
        default_factory=lambda: os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    temperature: float = 0.0  # Deterministic as possible
    max_tokens: int = 1024
    timeout_seconds: float = 60.0
    max_text_length: int = 20000


@dataclass
class StorageConfig:
    """Configuration for the Supabase record store."""

    supabase_url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    supabase_key: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_KEY"))
    products_table: str = "products"
    profiles_table: str = "user_profiles"
    scan_usage_rpc: str = "increment_scan_usage"

    # Persisted field limits
    max_title_length: int = 500
    max_brand_length: int = 100
    max_raw_text_length: int = 20000


@dataclass
class AuthConfig:
    """Configuration for scan-quota checks on authenticated requests."""

    daily_abuse_threshold_free: int = 20
    daily_abuse_threshold_premium: int = 50

    def daily_threshold(self, subscription_tier: Optional[str]) -> int:
        """Daily scan count at which an account gets flagged."""
        if subscription_tier == "premium":
            return self.daily_abuse_threshold_premium
        return self.daily_abuse_threshold_free


@dataclass
class ServerConfig:
    """Configuration for the HTTP API."""

    host: str = "127.0.0.1"
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    max_content_length: int = 50 * 1024  # 50kb JSON bodies
    allowed_origin_prefixes: tuple = ("chrome-extension://", "moz-extension://")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    log_dir: Path = field(default_factory=lambda: Path(__file__).parent.parent / "logs")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_to_file: bool = False
    log_to_console: bool = True
    text_preview_chars: int = 1000  # Analyzed text preview in debug logs

    def ensure_dirs(self) -> None:
        """Create log directory if it doesn't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class AppConfig:
    """Main configuration combining all settings."""

    selector: SelectorConfig = field(default_factory=SelectorConfig)
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Ensure the log directory exists when file logging is on."""
        if self.logging.log_to_file:
            self.logging.ensure_dirs()


# Default configuration instance
config = AppConfig()
