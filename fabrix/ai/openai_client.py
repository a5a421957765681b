"""
OpenAI API Client

Async wrapper around the OpenAI chat completions API, used as the default
extraction provider.

Usage:
    from fabrix.ai import OpenAIClient

    async with OpenAIClient() as client:
        response = await client.generate("60% cotton, 40% polyester", system=SYSTEM_PROMPT)
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import openai
from openai import AsyncOpenAI
from rich.console import Console

from ..errors import ProviderError

console = Console()


@dataclass
class OpenAIConfig:
    """Configuration for OpenAI client."""

    api_key: Optional[str] = None

    chat_model: str = "gpt-4o-mini"

    # Timeouts
    timeout_seconds: float = 60.0

    # Generation settings
    temperature: float = 0.0
    max_tokens: int = 1024


class OpenAIClient:
    """
    Async client for OpenAI API.

    Drop-in replacement for OllamaClient with the same interface.
    """

    def __init__(self, config: Optional[OpenAIConfig] = None):
        self.config = config or OpenAIConfig()
        # Get API key from config or environment
        api_key = self.config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )
        self._client = AsyncOpenAI(
            api_key=api_key,
            timeout=self.config.timeout_seconds,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def connect(self) -> None:
        """Initialize the client (no-op for OpenAI, kept for compatibility)."""
        pass

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._client.close()

    async def is_available(self) -> bool:
        """Check if OpenAI API is accessible."""
        try:
            await self._client.models.list()
            return True
        except openai.OpenAIError as e:
            console.print(f"[red]OpenAI API not available: {e}[/red]")
            return False

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
            ProviderError: The API answered with an error or was unreachable
        """
        model = model or self.config.chat_model
        messages = []

        if system:
            messages.append({"role": "system", "content": system})

        messages.append({"role": "user", "content": prompt})

        # temperature=0 is meaningful here, so no `or` fallback
        if temperature is None:
            temperature = self.config.temperature

        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or self.config.max_tokens,
            )
        except openai.APIStatusError as e:
            raise ProviderError(e.message, status_code=e.status_code) from e
        except openai.APIError as e:
            raise ProviderError(str(e)) from e

        return response.choices[0].message.content or ""


async def test_client():
    """Smoke-test the OpenAI client against the live API."""
    console.print("\n[bold cyan]Testing OpenAI Client[/bold cyan]\n")

    try:
        async with OpenAIClient() as client:
            available = await client.is_available()
            console.print(f"OpenAI API available: {'✓' if available else '✗'}")

            if not available:
                console.print("[red]Please check your OPENAI_API_KEY[/red]")
                return

            console.print("\n[cyan]Testing text generation...[/cyan]")
            response = await client.generate(
                "Name the fibers in: 60% cotton, 40% polyester. Be brief."
            )
            console.print(f"Response: {response[:500]}")

    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
    except ProviderError as e:
        console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    asyncio.run(test_client())
