"""
AI Module for fabrix

Extracts fiber compositions from product text using OpenAI (default) or a
local Ollama server, and grades them with a rule-based policy:
- composition_extractor: prompt, response parsing, provider call
- composition_policy: name normalization, deduplication, grading

Configuration:
- Set OPENAI_API_KEY in .env to use OpenAI (gpt-4o-mini)
- Or set EXTRACTION_PROVIDER=ollama and run `ollama serve`
"""

from .composition_extractor import (
    CompositionExtractor,
    ExtractionRequest,
    SYSTEM_PROMPT,
    build_extraction_request,
    create_ai_client,
    parse_extraction_response,
)
from .composition_policy import (
    CompositionPolicyResult,
    FiberCategory,
    POLICY_VERSION,
    apply_composition_policy,
    classify_fiber,
    compute_grade,
    normalize_fiber_name,
)
from .ollama_client import OllamaClient, OllamaConfig
from .openai_client import OpenAIClient, OpenAIConfig

__all__ = [
    # Clients
    "OpenAIClient",
    "OpenAIConfig",
    "OllamaClient",
    "OllamaConfig",
    # Extraction
    "CompositionExtractor",
    "ExtractionRequest",
    "SYSTEM_PROMPT",
    "build_extraction_request",
    "create_ai_client",
    "parse_extraction_response",
    # Policy
    "CompositionPolicyResult",
    "FiberCategory",
    "POLICY_VERSION",
    "apply_composition_policy",
    "classify_fiber",
    "compute_grade",
    "normalize_fiber_name",
]
