#!/usr/bin/env python3
"""
HTTP API for the fabrix browser extension.

Endpoints:
  POST /analyze        (auth) page text -> graded fiber composition
  POST /save-product   validated product composition -> products table
  GET  /auth/me        (auth) current user and scan quota
  GET  /health         liveness check

Usage:
    python server.py              # http://127.0.0.1:3000
    python server.py --port 8080
"""
import argparse
import logging
import re
from functools import wraps
from typing import Optional

from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from rich.console import Console
from rich.logging import RichHandler
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from config.settings import LoggingConfig, config
from fabrix.ai.composition_extractor import CompositionExtractor, prepare_user_text
from fabrix.errors import AuthenticationError, FabrixError
from fabrix.loaders.supabase_loader import SupabaseProductStore, SupabaseProfileStore
from fabrix.pipeline import CompositionService

console = Console()
logger = logging.getLogger("fabrix.server")

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = config.server.max_content_length

# Only the browser extension may call the API cross-origin
CORS(
    app,
    origins=[re.escape(prefix) + ".*" for prefix in config.server.allowed_origin_prefixes],
    methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    supports_credentials=True,
)

# Lazily created collaborators; tests swap these for fakes
product_store = None
profile_store = None
ai_client = None  # None: each request opens its own provider client


def configure_logging(logging_config: Optional[LoggingConfig] = None) -> None:
    """Route stdlib logging through rich, plus an optional log file."""
    cfg = logging_config or config.logging
    handlers: list[logging.Handler] = []
    if cfg.log_to_console:
        handlers.append(RichHandler(console=console, rich_tracebacks=True, show_path=False))
    if cfg.log_to_file:
        cfg.ensure_dirs()
        file_handler = logging.FileHandler(cfg.log_dir / "server.log")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )


def get_product_store():
    """Get or create the Supabase product store."""
    global product_store
    if product_store is None:
        product_store = SupabaseProductStore(config.storage)
    return product_store


def get_profile_store():
    """Get or create the Supabase profile store."""
    global profile_store
    if profile_store is None:
        profile_store = SupabaseProfileStore(config.storage)
    return profile_store


def get_service(with_store: bool = True) -> CompositionService:
    extractor = CompositionExtractor(config.extraction, ai_client=ai_client)
    store = get_product_store() if with_store else None
    return CompositionService(extractor, store=store, app_config=config)


# ============================================
# AUTHENTICATION
# ============================================


def _bearer_token() -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None


def require_auth(f):
    """
    Decorator to protect API routes with Supabase authentication.

    Usage:
        @app.route("/api/protected")
        @require_auth
        def protected_route():
            user = g.current_user
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AuthenticationError("Authentication required")

        # Raises AuthenticationError / AccessDenied
        g.current_user = get_profile_store().get_user(token)

        return current_app.ensure_sync(f)(*args, **kwargs)

    return decorated_function


# ============================================
# ERRORS
# ============================================


@app.errorhandler(FabrixError)
def handle_fabrix_error(error: FabrixError):
    if error.status_code >= 500:
        logger.error("%s on %s: %s", type(error).__name__, request.path, error.message)
    else:
        logger.info("%s on %s: %s", type(error).__name__, request.path, error.message)
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(error):
    return jsonify({"error": "Request body too large"}), 413


@app.errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    return jsonify({"error": error.name}), error.code


@app.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    logger.exception("Server error in %s", request.path)
    return jsonify({"error": "Internal Server Error."}), 500


# ============================================
# ROUTES
# ============================================


@app.route("/health")
def health():
    """Liveness check."""
    return jsonify({"status": "ok", "provider": config.extraction.provider})


@app.route("/auth/me")
@require_auth
def auth_me():
    """Current user info."""
    user = g.current_user
    return jsonify(
        {
            "user": {
                "id": user.get("id"),
                "email": user.get("email"),
                "subscription_tier": user.get("subscription_tier"),
                "scans_remaining": user.get("scans_remaining"),
                "scans_used_today": user.get("scans_used_today"),
            }
        }
    )


@app.route("/analyze", methods=["POST"])
@require_auth
async def analyze():
    """Extract and grade the composition in page text."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    text = prepare_user_text(data.get("text"), config.extraction.max_text_length)

    service = get_service(with_store=False)
    scans_remaining = service.check_quota(g.current_user, get_profile_store())

    async with service.extractor:
        result = await service.analyze(text)

    body = result.record.to_dict()
    body["scans_remaining"] = scans_remaining
    body["subscription_tier"] = g.current_user.get("subscription_tier")
    return jsonify(body)


@app.route("/save-product", methods=["POST"])
def save_product():
    """Save a product composition, or bump its check count."""
    data = request.get_json(silent=True)
    saved = get_service().save(data)
    return jsonify(saved.to_dict()), saved.status_code


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="fabrix API server")
    parser.add_argument(
        "--host",
        default=config.server.host,
        help=f"Interface to bind (default: {config.server.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.server.port,
        help=f"Port to run the server on (default: {config.server.port})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    return parser.parse_args()


def run_server(host: str, port: int, debug: bool = False) -> None:
    """Configure logging and start the Flask development server."""
    configure_logging()
    console.print()
    console.print("[bold]fabrix API[/bold]")
    console.print(f"[dim]Provider:[/dim] {config.extraction.provider}")
    console.print(f"[dim]Listening:[/dim] [cyan]http://{host}:{port}[/cyan]")
    console.print("[dim]Press CTRL+C to stop the server[/dim]\n")
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    args = parse_args()
    run_server(args.host, args.port, debug=args.debug)
