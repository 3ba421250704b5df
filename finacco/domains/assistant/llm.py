"""Client for the Gemini generateContent REST API."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from finacco.core.config import settings
from finacco.core.errors import ExternalServiceError, FormValidationError
from finacco.core.logging import mask_secret

logger = logging.getLogger(__name__)

# Substrings of Google error messages and what the user should be told
KEY_ERROR_HINTS = (
    ("API key not valid", "Invalid API key. Please make sure you copied the entire key correctly"),
    ("API has not been enabled", "The Gemini API is not enabled for this API key. Please enable it in your Google Cloud Console"),
    ("billing", "Please ensure billing is enabled for your Google Cloud project"),
    ("permission", "This API key does not have permission to access the Gemini API. Please check the API key permissions"),
    ("unauthorized", "This API key does not have permission to access the Gemini API. Please check the API key permissions"),
)


def validate_key_format(api_key: Optional[str]) -> str:
    """Local format check run before any call; returns the stripped key."""
    key = (api_key or "").strip()
    if not key:
        raise FormValidationError({"api_key": "Please enter a valid API key"})
    if not key.startswith(settings.api_key_prefix):
        raise FormValidationError({"api_key": f'Invalid API key format. Key should start with "{settings.api_key_prefix}"'})
    if len(key) < settings.api_key_min_length:
        raise FormValidationError({"api_key": "API key appears too short. Please check the key"})
    return key


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or "Unknown error occurred"
    except ValueError:
        return "Unknown error occurred"


class GeminiClient:
    """Prompt in, candidate text out.

    Timeouts, transport errors and 5xx answers are retried with exponential
    backoff up to ``max_attempts``; anything else fails immediately.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = validate_key_format(api_key)
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.llm_timeout_seconds
        self.max_attempts = max_attempts or settings.llm_max_attempts
        self.base_delay = settings.llm_retry_base_delay if base_delay is None else base_delay
        self.transport = transport
        self._sleep = sleep

    def __repr__(self) -> str:
        return f"GeminiClient(model={self.model}, key={mask_secret(self.api_key)})"

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        last_error = "no response"

        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self.transport) as client:
            for attempt in range(self.max_attempts):
                try:
                    response = await client.request(method, url, params={"key": self.api_key}, json=payload)
                except httpx.TimeoutException:
                    last_error = "timeout"
                except httpx.TransportError as e:
                    last_error = type(e).__name__
                else:
                    if response.status_code < 500:
                        return response
                    last_error = f"HTTP {response.status_code}"

                logger.warning("Gemini %s attempt %d/%d failed: %s", path, attempt + 1, self.max_attempts, last_error)
                if attempt < self.max_attempts - 1:
                    await self._sleep(self.base_delay * 2 ** attempt)

        logger.error("Gemini %s gave up after %d attempts (%s)", path, self.max_attempts, last_error)
        if last_error == "timeout":
            raise ExternalServiceError("The AI service did not respond in time. Please try again.", code="llm_timeout")
        raise ExternalServiceError("The AI service is unavailable. Please try again.", code="llm_unavailable")

    async def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        config: Dict[str, Any] = {}
        if temperature is not None:
            config["temperature"] = temperature
        if max_output_tokens is not None:
            config["maxOutputTokens"] = max_output_tokens
        if config:
            payload["generationConfig"] = config

        response = await self._request("POST", f"models/{self.model}:generateContent", payload)
        if response.status_code != 200:
            message = _error_message(response)
            logger.error("Gemini request rejected (%d): %s", response.status_code, message)
            raise ExternalServiceError(f"AI request failed: {message}", code="llm_error")

        try:
            return response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("The AI service returned an empty response", code="llm_empty") from e

    async def verify_key(self) -> None:
        """Live check that the key can reach the model; FormValidationError when rejected."""
        response = await self._request("GET", f"models/{self.model}")
        if response.status_code == 200:
            return

        message = _error_message(response)
        for needle, hint in KEY_ERROR_HINTS:
            if needle in message:
                raise FormValidationError({"api_key": hint})
        logger.warning("API key verification failed (%d): %s", response.status_code, message)
        raise ExternalServiceError(f"Could not verify the API key: {message}", code="llm_error")
