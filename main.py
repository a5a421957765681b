#!/usr/bin/env python3
"""
fabrix - Main Entry Point

Finds the fabric composition of clothing products: reads product-page text,
has a language model extract the fiber percentages, grades the garment
(Natural / Synthetic / Semi-Synthetic / Mixed) and optionally saves it to
Supabase.

Usage:
    python main.py --text "Content: 60% cotton, 40% polyester"
    python main.py --url https://www.example.com/products/shirt --save
    python main.py --serve
"""
import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import ExtractionConfig, config
from fabrix.ai.composition_extractor import CompositionExtractor, create_ai_client
from fabrix.ai.composition_policy import ORGANIC_SUFFIX, RECYCLED_SUFFIX
from fabrix.errors import FabrixError
from fabrix.extractors.page_extractor import PageTextCollector
from fabrix.extractors.text_selector import ScoredTextBlock
from fabrix.pipeline import CompositionService, ScanResult
from fabrix.transformers.product_transformer import CompositionRecord, FiberEntry

console = Console()

# Same palette as the browser extension popup
GRADE_COLORS = {
    "Natural": "#27ae60",
    "Synthetic": "#c0392b",
    "Semi-Synthetic": "#3498db",
    "Mixed": "#d35400",
    "Unknown": "#95a5a6",
}


class CustomHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter that preserves formatting and adds width."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=40, width=100)


def parse_args(argv=None):
    """Parse command line arguments."""

    epilog = """
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
EXAMPLES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  Analyze text:
    python main.py --text "Shell: 60% cotton, 40% polyester; Lining: 100% polyester"
    python main.py --file label.txt

  Analyze product pages:
    python main.py --url https://www.example.com/p/123
    python main.py --url URL1 URL2 --save           Grade and save both
    python main.py --url URL --show-candidates      Show the text sent to the model
    python main.py --url URL --headless false       Watch the browser

  Providers:
    python main.py --provider ollama --model llama3.1 --text "..."
    python main.py --provider-status

  API server:
    python main.py --serve --port 3000

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
NOTES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  • OPENAI_API_KEY is required for the openai provider
  • --save requires SUPABASE_URL and SUPABASE_KEY in .env
  • Only explicit percentages are extracted; pages without them grade Unknown
"""

    parser = argparse.ArgumentParser(
        prog="python main.py",
        description="""
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
                        FABRIX FABRIC COMPOSITION GRADER
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Extracts fiber percentages from product text and grades the garment:
  • Natural, Synthetic, Semi-Synthetic, Mixed or Unknown
  • Shell, lining, trim and other sections kept apart
  • Recycled and organic fibers marked
""",
        epilog=epilog,
        formatter_class=CustomHelpFormatter,
    )

    # Input options group
    input_group = parser.add_argument_group("Input Options", "What to analyze")
    source = input_group.add_mutually_exclusive_group()

    source.add_argument("--text", "-t", type=str, metavar="TEXT", help="Composition text to analyze")
    source.add_argument("--file", "-f", type=Path, metavar="PATH", help="Read composition text from a file")
    source.add_argument(
        "--url",
        "-u",
        type=str,
        nargs="+",
        metavar="URL",
        help="Product page URL(s) to collect and analyze",
    )

    input_group.add_argument(
        "--show-candidates",
        action="store_true",
        help="Print the scored text blocks picked from the page",
    )

    # Browser options group
    browser_group = parser.add_argument_group("Browser Options", "Control the browser behavior")

    browser_group.add_argument(
        "--headless",
        type=str,
        default="true",
        choices=["true", "false"],
        metavar="BOOL",
        help="Run browser invisibly (default: true). Set 'false' to watch.",
    )

    # Storage options group
    storage_group = parser.add_argument_group("Storage Options", "Control where results are saved")

    storage_group.add_argument("--save", action="store_true", help="Save graded pages to Supabase")
    storage_group.add_argument("--brand", type=str, help="Brand to save (default: derived from URL)")
    storage_group.add_argument("--title", type=str, help="Title to save (default: page title)")

    # AI options group
    ai_group = parser.add_argument_group("AI Options", "Extraction provider")

    ai_group.add_argument(
        "--provider",
        choices=["openai", "ollama"],
        default=None,
        help=f"Extraction provider (default: {config.extraction.provider})",
    )
    ai_group.add_argument("--model", type=str, help="Model name for the chosen provider")
    ai_group.add_argument(
        "--provider-status",
        action="store_true",
        help="Check that the extraction provider is reachable",
    )

    # Server options group
    server_group = parser.add_argument_group("Server Options", "Run the HTTP API")

    server_group.add_argument("--serve", action="store_true", help="Start the API server")
    server_group.add_argument(
        "--port",
        type=int,
        default=config.server.port,
        help=f"API server port (default: {config.server.port})",
    )

    return parser.parse_args(argv)


def create_extraction_config(args) -> ExtractionConfig:
    """Apply --provider/--model on top of the configured defaults."""
    cfg = dataclasses.replace(config.extraction)
    if args.provider:
        cfg.provider = args.provider
    if args.model:
        if cfg.provider == "ollama":
            cfg.ollama_model = args.model
        else:
            cfg.openai_model = args.model
    return cfg


# =============================================================================
# RENDERING
# =============================================================================


def format_fiber(fiber: FiberEntry) -> str:
    """Fiber name with rich badges for recycled/organic markers."""
    name = fiber.name.replace(RECYCLED_SUFFIX, "").replace(ORGANIC_SUFFIX, "").strip()
    badges = ""
    if RECYCLED_SUFFIX in fiber.name:
        badges += " [bold green]♻ Recycled[/bold green]"
    if ORGANIC_SUFFIX in fiber.name:
        badges += " [bold green]🌱 Organic[/bold green]"
    return f"{name.title()}{badges}"


def _section_table(title: str, fibers: list[FiberEntry]) -> Table:
    table = Table(title=title, title_justify="left", show_header=False, box=None)
    table.add_column("Fiber")
    table.add_column("Percentage", justify="right")
    for fiber in fibers:
        table.add_row(format_fiber(fiber), f"{fiber.percentage:g}%")
    return table


def render_composition(record: CompositionRecord, heading: str = "Composition") -> None:
    """Print a graded composition the way the extension popup shows it."""
    grade = record.composition_grade.value
    color = GRADE_COLORS.get(grade, GRADE_COLORS["Unknown"])

    console.print(
        Panel(
            f"[bold {color}]{grade.upper()}[/bold {color}]",
            title=heading,
            expand=False,
        )
    )

    if not record.fibers:
        console.print("[dim]No composition details found.[/dim]")
        console.print(
            "[dim]Tip: open product details, care instructions or composition "
            "sections before scanning.[/dim]"
        )
        return

    console.print(_section_table("Shell", record.fibers))
    if record.lining:
        console.print(_section_table("Lining", record.lining))
    if record.trim:
        console.print(_section_table("Trim", record.trim))
    for section in record.other or []:
        if section.fibers:
            console.print(_section_table(section.label, section.fibers))


def render_candidates(candidates: list[ScoredTextBlock]) -> None:
    """Print the text blocks picked as composition candidates."""
    if not candidates:
        console.print("[yellow]No candidate blocks[/yellow]")
        return

    table = Table(title="Candidate text blocks")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right", style="cyan")
    table.add_column("Text")
    for index, block in enumerate(candidates, 1):
        preview = " ".join(block.text.split())
        if len(preview) > 160:
            preview = preview[:157] + "..."
        table.add_row(str(index), str(block.score), preview)
    console.print(table)


def render_scan(result: ScanResult, show_candidates: bool = False) -> None:
    console.print(f"\n[bold]{result.title}[/bold] [dim]({result.brand})[/dim]")
    console.print(f"[dim]{result.url}[/dim]")

    if show_candidates:
        render_candidates(result.candidates)

    if result.analysis is None:
        console.print("[yellow]No composition text found on this page[/yellow]")
        return

    render_composition(result.analysis.record)
    for note in result.analysis.notes:
        console.print(f"[dim]• {note}[/dim]")

    if result.saved:
        style = "cyan" if result.saved.already_exists else "green"
        console.print(f"[{style}]{result.saved.message} (checked {result.saved.check_count}x)[/{style}]")


# =============================================================================
# COMMANDS
# =============================================================================


async def provider_status(extraction_config: ExtractionConfig) -> int:
    """Check the extraction provider and report."""
    console.print("\n[bold cyan]Extraction Provider Status[/bold cyan]\n")

    try:
        client = create_ai_client(extraction_config)
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1

    async with client:
        available = await client.is_available()

    if available:
        console.print(f"[green]✓ {extraction_config.provider} is reachable[/green]")
        return 0

    console.print(f"[red]✗ {extraction_config.provider} is not reachable[/red]")
    if extraction_config.provider == "ollama":
        console.print("\n[yellow]To start Ollama:[/yellow]")
        console.print("  1. Start: ollama serve")
        console.print(f"  2. Pull model: ollama pull {extraction_config.ollama_model}")
    return 1


async def analyze_text(text: str, extraction_config: ExtractionConfig) -> int:
    """Analyze composition text and print the graded result."""
    async with CompositionExtractor(extraction_config) as extractor:
        result = await extractor.extract(text)

    render_composition(result.record)
    for note in result.notes:
        console.print(f"[dim]• {note}[/dim]")
    return 0


async def scan_pages(args, extraction_config: ExtractionConfig) -> int:
    """Collect, analyze and optionally save product pages."""
    store = None
    if args.save:
        from fabrix.loaders.supabase_loader import SupabaseProductStore

        store = SupabaseProductStore(config.storage)

    scraper_config = dataclasses.replace(config.scraper, headless=args.headless == "true")

    async with CompositionExtractor(extraction_config) as extractor:
        service = CompositionService(extractor, store=store)
        async with PageTextCollector(scraper_config) as collector:
            results = await service.scan_urls(
                args.url,
                collector,
                save=args.save,
                brand=args.brand,
                title=args.title,
            )

    for result in results:
        render_scan(result, show_candidates=args.show_candidates)
    return 0


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    extraction_config = create_extraction_config(args)

    if args.serve:
        from server import run_server

        run_server(config.server.host, args.port)
        return 0

    try:
        if args.provider_status:
            return asyncio.run(provider_status(extraction_config))

        if args.text is not None:
            return asyncio.run(analyze_text(args.text, extraction_config))

        if args.file is not None:
            text = args.file.read_text(encoding="utf-8")
            return asyncio.run(analyze_text(text, extraction_config))

        if args.url:
            return asyncio.run(scan_pages(args, extraction_config))

    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130
    except FabrixError as e:
        console.print(f"\n[bold red]{e.message}[/bold red]")
        return 1
    except (ValueError, OSError) as e:
        console.print(f"\n[bold red]Error: {e}[/bold red]")
        return 1

    console.print("[yellow]Nothing to do. Pass --text, --file, --url or --serve (see --help).[/yellow]")
    return 2


if __name__ == "__main__":
    sys.exit(main())
