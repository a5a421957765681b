"""
Ollama API Client

Async wrapper for the Ollama REST API, for running composition extraction
against a local model instead of OpenAI.

Usage:
    from fabrix.ai import OllamaClient

    async with OllamaClient() as client:
        response = await client.generate("60% cotton, 40% polyester", system=SYSTEM_PROMPT)
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx
from rich.console import Console

from ..errors import ProviderError

console = Console()


@dataclass
class OllamaConfig:
    """Configuration for Ollama client."""

    base_url: str = "http://localhost:11434"

    chat_model: str = "llama3.1"

    # Timeouts
    timeout_seconds: float = 60.0

    # Generation settings
    temperature: float = 0.0
    max_tokens: int = 1024


class OllamaClient:
    """
    Async client for Ollama API.

    Same generate() contract as OpenAIClient.
    """

    def __init__(self, config: Optional[OllamaConfig] = None):
        self.config = config or OllamaConfig()
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self._client

    async def is_available(self) -> bool:
        """Check if Ollama server is running."""
        try:
            client = self._get_client()
            response = await client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> list[str]:
        """List locally installed models."""
        try:
            client = self._get_client()
            response = await client.get("/api/tags")
            if response.status_code == 200:
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
            return []
        except httpx.HTTPError as e:
            console.print(f"[red]Error listing models: {e}[/red]")
            return []

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate text response from a prompt.

        Args:
            prompt: The user prompt
            model: Model to use (defaults to chat_model)
            system: Optional system prompt
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate

        Returns:
            Generated text response

        Raises:
            ProviderError: Ollama answered non-200 or could not be reached
        """
        client = self._get_client()
        model = model or self.config.chat_model

        if temperature is None:
            temperature = self.config.temperature

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens or self.config.max_tokens,
            },
        }

        if system:
            payload["system"] = system

        try:
            response = await client.post("/api/generate", json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(str(e) or type(e).__name__) from e

        if response.status_code != 200:
            raise ProviderError(
                f"Ollama returned {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        return data.get("response", "")


async def test_client():
    """Smoke-test the Ollama client against a local server."""
    console.print("\n[bold cyan]Testing Ollama Client[/bold cyan]\n")

    async with OllamaClient() as client:
        available = await client.is_available()
        console.print(f"Ollama server available: {'✓' if available else '✗'}")

        if not available:
            console.print("[red]Please start Ollama: ollama serve[/red]")
            return

        models = await client.list_models()
        console.print(f"Available models: {models}")

        response = await client.generate(
            "Name the fibers in: 60% cotton, 40% polyester. Be brief."
        )
        console.print(f"Response: {response[:500]}")


if __name__ == "__main__":
    asyncio.run(test_client())
