"""LLM backend for the plan coach using Gemini via the google-genai SDK."""

import logging
import os

import httpx
from google import genai
from google.genai import errors as genai_errors

from src.agent.context_builder import ChatTurn

logger = logging.getLogger(__name__)

MODEL = os.environ.get("PLANCOACH_MODEL", "gemini-2.5-flash")
GENERATION_TIMEOUT_SECONDS = 60
TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 4096
CONNECTION_CHECK_PROMPT = "Say 'plancoach connected successfully' and nothing else."


class GenerationError(Exception):
    """The generative service could not produce a reply."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


def get_client(timeout_seconds: int = GENERATION_TIMEOUT_SECONDS) -> genai.Client:
    """Create a Gemini client using the API key from environment."""
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not set in environment")
    return genai.Client(
        api_key=api_key,
        http_options=genai.types.HttpOptions(timeout=timeout_seconds * 1000),
    )


class GenerativeClient:
    """Thin boundary around the generative service: role-tagged turns in, text out."""

    def __init__(self, client: genai.Client | None = None, model: str = MODEL):
        self._client = client
        self.model = model

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    def generate(self, system_prompt: str, turns: list[ChatTurn]) -> str:
        """Send the conversation and return the reply text.

        Raises GenerationError on transport failure, timeout, API error, or an
        empty reply.
        """
        contents = [
            genai.types.Content(
                role="user" if t.role == "user" else "model",
                parts=[genai.types.Part(text=t.content)],
            )
            for t in turns
        ]
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=genai.types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=TEMPERATURE,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
            )
        except httpx.TimeoutException as e:
            raise GenerationError(f"Generation timed out: {e}") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation transport error: {e}") from e
        except genai_errors.APIError as e:
            retryable = e.code is None or e.code == 429 or e.code >= 500
            raise GenerationError(f"Generation API error {e.code}: {e.message}", retryable) from e

        text = (response.text or "").strip()
        if not text:
            raise GenerationError("No response from model")
        logger.debug("Received %d chars from %s", len(text), self.model)
        return text

    def check_connection(self) -> str:
        """Send a test prompt and return the reply text."""
        return self.generate(
            "You are a connectivity check.",
            [ChatTurn("user", CONNECTION_CHECK_PROMPT)],
        )
