"""
Composition Extractor

Sensor layer: asks a language model to turn product-page text into a
structured fiber composition, then hands the result to the policy layer.

Design:
- The model only reads explicit percentages; it never estimates
- Output is strict JSON, validated through CompositionRecord
- composition_policy recomputes the grade, so the model's grade is advisory

Usage:
    from fabrix.ai.composition_extractor import CompositionExtractor

    async with CompositionExtractor() as extractor:
        result = await extractor.extract("Content: 60% cotton, 40% polyester")
        print(result.record.composition_grade)
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError
from rich.console import Console

from config.settings import ExtractionConfig, LoggingConfig

from ..errors import MalformedExtractionOutput
from ..transformers.product_transformer import CompositionRecord
from ..transformers.validation import validate_text
from .composition_policy import CompositionPolicyResult, apply_composition_policy
from .ollama_client import OllamaClient, OllamaConfig
from .openai_client import OpenAIClient, OpenAIConfig

console = Console()
logger = logging.getLogger(__name__)

AIClient = Union[OpenAIClient, OllamaClient]


# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

SYSTEM_PROMPT = """You are a strict fashion data extractor for fabrix.
Read the product text and return ONLY valid JSON with this structure:
{
  "fibers": [{"name": "fiber_name", "percentage": number}],
  "lining": [{"name": "fiber_name", "percentage": number}] or null,
  "trim": [{"name": "fiber_name", "percentage": number}] or null,
  "other": [{"label": "section_name", "fibers": [{"name": "fiber_name", "percentage": number}]}] or null,
  "composition_grade": "Natural" | "Synthetic" | "Semi-Synthetic" | "Mixed" | "Unknown"
}

EXTRACTION RULES:
1. Only extract fibers that have an EXPLICIT percentage ("60% cotton").
2. Fiber names without percentages ("made with merino wool") or vague terms
   ("soft knit", "luxe fabric") mean the composition is Unknown.
3. Never invent, estimate or infer percentages from descriptions or marketing text.
4. Include EVERY fiber that has a percentage, including small elastane/spandex amounts.
5. When several percentage lists appear, use the one that adds up to 100%;
   that is the official composition field.
6. Ignore marketing copy that mentions only some of the fibers.

SECTIONS:
- "Content", "Shell", "Body", "Fabric", "Main" -> "fibers"
- "Lining" -> "lining"
- "Trim", "Ribbed Trim", "Cuffs", "Collar", "Binding", "Rib" -> "trim"
- "Interlining", "Interfacing", "Padding", "Fill", "Insulation" -> "other",
  with the section name as label, e.g. {"label": "Padding", "fibers": [...]}

Each section's fibers go ONLY in that section's array. Never copy a
section's fibers into another array and never split one section across arrays.

Example: "Content: 100% cashmere; Trim: 90% cashmere, 9% nylon, 1% elastane"
  CORRECT: {"fibers": [{"name": "cashmere", "percentage": 100}],
            "trim": [{"name": "cashmere", "percentage": 90}, {"name": "nylon", "percentage": 9}, {"name": "elastane", "percentage": 1}]}
  WRONG:   {"fibers": [{"name": "cashmere", "percentage": 100}, {"name": "cashmere", "percentage": 90}, {"name": "nylon", "percentage": 9}, {"name": "elastane", "percentage": 1}]}
  WRONG:   {"fibers": [{"name": "cashmere", "percentage": 100}, {"name": "nylon", "percentage": 9}, {"name": "elastane", "percentage": 1}],
            "trim": [{"name": "cashmere", "percentage": 90}]}

Example: "Shell: 60% cotton, 40% polyester; Lining: 100% polyester"
  CORRECT: {"fibers": [{"name": "cotton", "percentage": 60}, {"name": "polyester", "percentage": 40}],
            "lining": [{"name": "polyester", "percentage": 100}]}

RECYCLED AND ORGANIC FIBERS (write the base fiber plus a suffix):
- "Recycled", "Reclaimed", "LENZING ECOVERO", "Tencel", "Repreve", "rPET" -> "(Recycled)"
  - "Recycled Polyester" -> "polyester (Recycled)"
  - "LENZING ECOVERO Viscose" -> "viscose (Recycled)"
  - "Tencel Lyocell" -> "lyocell (Recycled)"
- "Organic Cotton" -> "cotton (Organic)"
- "Regular Cotton" -> "cotton"

FIBER TYPES:
- Natural: cotton, wool, silk, linen, cashmere, alpaca, mohair, hemp, ramie, jute, merino
- Petroleum-based synthetic: polyester, nylon, polyamide, acrylic
- Plant-based semi-synthetic: viscose, rayon, modal, lyocell, tencel, cupro, bamboo
- Stretch synthetics: spandex, elastane, lycra

GRADING (main "fibers" only; ignore lining, trim and other):
1. "Natural": only natural fibers, no synthetics.
2. "Semi-Synthetic": 50% or more plant-based semi-synthetics.
3. "Synthetic": 50% or more petroleum-based synthetics.
4. "Mixed": several fiber types and no category reaches 50%.
5. Grade on the base fiber; (Recycled) and (Organic) do not matter.
6. A small stretch share (2-10% elastane/spandex) does not change a clear grade.

If there are NO explicit percentages, return exactly:
{"fibers": [], "lining": null, "trim": null, "other": null, "composition_grade": "Unknown"}"""

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


# =============================================================================
# REQUEST BUILDING
# =============================================================================


@dataclass
class ExtractionRequest:
    """Two-part request for the provider: fixed instruction plus page text."""

    system: str
    user: str


def prepare_user_text(text: Any, max_length: Optional[int] = None) -> str:
    """
    Validate and trim page text before it is sent to the model.

    max_length defaults to ExtractionConfig.max_text_length.

    Raises:
        InvalidInput: text is not a string, is blank, or is too long
    """
    return validate_text(text, max_length=max_length)


def build_extraction_request(
    text: Any, max_length: Optional[int] = None
) -> ExtractionRequest:
    """Build the instruction + user message pair for one extraction call."""
    return ExtractionRequest(
        system=SYSTEM_PROMPT,
        user=prepare_user_text(text, max_length=max_length),
    )


# =============================================================================
# RESPONSE PARSING
# =============================================================================


def strip_code_fences(response: str) -> str:
    """Remove ```json / ``` fences models like to wrap JSON in."""
    return CODE_FENCE_PATTERN.sub("", response).strip()


def parse_extraction_response(response: Any) -> CompositionRecord:
    """
    Parse and validate the model response.

    Args:
        response: Raw model output

    Returns:
        CompositionRecord (grade as claimed by the model)

    Raises:
        MalformedExtractionOutput: not JSON, not an object, or wrong shape
    """
    if not isinstance(response, str):
        raise MalformedExtractionOutput()

    try:
        data = json.loads(strip_code_fences(response))
    except json.JSONDecodeError as e:
        logger.warning("Extraction response is not JSON: %s", e)
        raise MalformedExtractionOutput() from e

    if not isinstance(data, dict):
        logger.warning("Extraction response is %s, not an object", type(data).__name__)
        raise MalformedExtractionOutput()

    try:
        return CompositionRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Extraction response has the wrong shape: %s", e.error_count())
        raise MalformedExtractionOutput() from e


# =============================================================================
# MAIN EXTRACTOR CLASS
# =============================================================================


def create_ai_client(extraction_config: Optional[ExtractionConfig] = None) -> AIClient:
    """Instantiate the configured provider client."""
    cfg = extraction_config or ExtractionConfig()
    if cfg.provider == "ollama":
        return OllamaClient(
            OllamaConfig(
                base_url=cfg.ollama_base_url,
                chat_model=cfg.ollama_model,
                timeout_seconds=cfg.timeout_seconds,
                temperature=cfg.temperature,
                max_tokens=cfg.max_tokens,
            )
        )
    if cfg.provider == "openai":
        return OpenAIClient(
            OpenAIConfig(
                chat_model=cfg.openai_model,
                timeout_seconds=cfg.timeout_seconds,
                temperature=cfg.temperature,
                max_tokens=cfg.max_tokens,
            )
        )
    raise ValueError(f"Unknown extraction provider: {cfg.provider!r}")


class CompositionExtractor:
    """
    Composition extractor.

    One provider call per text, no retries: a bad answer surfaces as
    MalformedExtractionOutput, a provider failure as ProviderError.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        ai_client: Optional[Any] = None,
        logging_config: Optional[LoggingConfig] = None,
    ):
        self.config = config or ExtractionConfig()
        self.logging_config = logging_config or LoggingConfig()
        self.client = ai_client
        self._owns_client = ai_client is None

    async def __aenter__(self):
        """Async context manager entry."""
        if self._owns_client:
            self.client = create_ai_client(self.config)
            await self.client.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._owns_client and self.client:
            await self.client.close()
            self.client = None

    async def extract(self, text: Any) -> CompositionPolicyResult:
        """
        Extract and grade the composition in page text.

        Args:
            text: Candidate text from the page (or pasted by a user)

        Returns:
            CompositionPolicyResult with the normalized, rule-graded record

        Raises:
            InvalidInput: text is empty or too long
            ProviderError: the model endpoint failed
            MalformedExtractionOutput: the answer is not a composition record
        """
        if not self.client:
            raise RuntimeError("Extractor not initialized. Use async context manager.")

        request = build_extraction_request(text, max_length=self.config.max_text_length)

        preview = self.logging_config.text_preview_chars
        logger.debug("Analyzing text (first %d chars):\n%s", preview, request.user[:preview])

        response = await self.client.generate(
            prompt=request.user,
            system=request.system,
            temperature=self.config.temperature,
        )
        logger.debug("Model response:\n%s", response)

        record = parse_extraction_response(response)
        result = apply_composition_policy(record)

        for note in result.notes:
            logger.info("Policy: %s", note)

        return result


# =============================================================================
# TESTING
# =============================================================================


async def test_extractor():
    """Run one extraction against the configured provider."""
    from dotenv import load_dotenv

    load_dotenv()

    console.print("\n[bold cyan]Testing Composition Extractor[/bold cyan]\n")

    sample = "Content: 60% cotton, 40% recycled polyester\nLining: 100% polyester"

    async with CompositionExtractor() as extractor:
        console.print(f"[cyan]Extracting: {sample!r}[/cyan]\n")
        result = await extractor.extract(sample)
        console.print_json(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    asyncio.run(test_extractor())
