# services/llm_service.py
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import requests

from core.domain import GenerationOptions
from core.exceptions import LanguageModelError
from core.interfaces import ILanguageModel
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class OllamaLanguageModel(ILanguageModel):
    """A client for a local LLM API (Ollama `/api/generate`)."""

    def __init__(self, base_url: str, model: str, timeout: int = settings.REQUEST_TIMEOUT):
        """
        Initializes the client.

        Args:
            base_url: The base URL of the LLM API.
            model: The name of the model to use.
            timeout: The request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def _payload(self, prompt: str, options: Optional[GenerationOptions], stream: bool) -> Dict[str, Any]:
        options = options or GenerationOptions()
        model_options: Dict[str, Any] = {"temperature": options.temperature}
        if options.max_tokens:
            model_options["num_predict"] = options.max_tokens

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": stream,
            "options": model_options,
        }
        if options.json_output:
            payload["format"] = "json"
        return payload

    def _post(self, payload: Dict[str, Any], stream: bool) -> requests.Response:
        """POST to the generate endpoint, translating transport errors to LanguageModelError."""
        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.timeout,
                stream=stream,
            )
            response.raise_for_status()  # Raises an HTTPError for bad responses (4xx or 5xx)
            return response
        except requests.exceptions.Timeout as e:
            logger.error(f"LLM request timed out after {self.timeout} seconds.")
            raise LanguageModelError("LLM request timed out") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Cannot connect to LLM at {self.base_url}. Is the service running?")
            raise LanguageModelError("Cannot connect to LLM service") from e
        except requests.exceptions.HTTPError as e:
            logger.error(f"LLM service returned an error: {e.response.status_code} {e.response.text}")
            raise LanguageModelError(f"LLM error: {e.response.status_code}") from e

    def _generate_sync(self, prompt: str, options: Optional[GenerationOptions]) -> str:
        response = self._post(self._payload(prompt, options, stream=False), stream=False)
        try:
            result = response.json()
        except ValueError as e:
            raise LanguageModelError("LLM returned a non-JSON body") from e

        text = (result.get("response") or "").strip()
        if not text:
            logger.error("LLM response was empty or malformed.")
            raise LanguageModelError("Empty response from LLM")
        return text

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        if not prompt or not prompt.strip():
            raise LanguageModelError("Empty prompt provided")

        logger.info(f"Sending prompt to LLM model '{self.model}'...")
        text = await asyncio.to_thread(self._generate_sync, prompt, options)
        logger.info("Successfully received response from LLM.")
        return text

    def _open_stream(self, prompt: str, options: Optional[GenerationOptions]) -> requests.Response:
        return self._post(self._payload(prompt, options, stream=True), stream=True)

    async def stream(self, prompt: str, options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        if not prompt or not prompt.strip():
            raise LanguageModelError("Empty prompt provided")

        response = await asyncio.to_thread(self._open_stream, prompt, options)
        lines: Iterator[bytes] = response.iter_lines()
        try:
            while True:
                try:
                    line = await asyncio.to_thread(next, lines, None)
                except requests.exceptions.RequestException as e:
                    raise LanguageModelError(f"LLM stream interrupted: {e}") from e
                if line is None:
                    break
                if not line:
                    continue

                try:
                    event = json.loads(line)
                except ValueError:
                    logger.warning("Skipping malformed stream line from LLM")
                    continue

                if event.get("error"):
                    raise LanguageModelError(f"LLM error: {event['error']}")
                piece = event.get("response")
                if piece:
                    yield piece
                if event.get("done"):
                    break
        finally:
            # Release the connection even when the consumer stops early
            await asyncio.to_thread(response.close)
