# api_client.py

import httpx
import time
from typing import List, Dict, Optional

from openai import AsyncOpenAI, APIStatusError, APIConnectionError, OpenAIError

from errors import ConfigurationError, ServiceError
from schemas import EncodedPart
from utils import log
from config import API_BASE_URL, API_MODEL, API_TIMEOUT, API_VERIFY_SSL, get_api_key

EMPTY_RESPONSE_MESSAGE = "The model returned an empty response. Please try again with clearer documents."
MISSING_KEY_MESSAGE = "API Key is missing. Please check your environment configuration."


class APIClient:
    """An async client for the model API. One request per call, no retries."""
    def __init__(self, model: str = API_MODEL, base_url: str = API_BASE_URL):
        self.model = model
        self.base_url = base_url
        self._client: Optional[AsyncOpenAI] = None
        self._client_key: Optional[str] = None

    def check_configuration(self) -> str:
        api_key = get_api_key()
        if not api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)
        return api_key

    async def _get_client(self) -> AsyncOpenAI:
        """Builds the underlying client on first use, and again whenever the key changes."""
        api_key = self.check_configuration()

        if self._client is None or self._client_key != api_key:
            if self._client is not None:
                await self.close()
            http_client = httpx.AsyncClient(http2=True, verify=API_VERIFY_SSL, timeout=API_TIMEOUT)
            self._client = AsyncOpenAI(
                api_key=api_key, base_url=self.base_url, max_retries=0, http_client=http_client
            )
            self._client_key = api_key
            log.info(f"Initialized AsyncOpenAI client for model '{self.model}'.")
        return self._client

    def _prepare_request_messages(self, prompt_text: str, parts: List[EncodedPart]) -> List[Dict]:
        """Instruction text first, then every encoded file in the order given."""
        content_parts = [{"type": "text", "text": prompt_text}]
        for part in parts:
            content_parts.append({
                "type": "image_url", "image_url": {"url": part.as_data_url()}
            })
        return [{"role": "user", "content": content_parts}]

    async def generate_text(self, prompt_text: str, parts: List[EncodedPart], context: str) -> str:
        """
        Sends one request and returns the model's text verbatim.
        Raises ConfigurationError before any network I/O when no key is set,
        and ServiceError for transport failures, API errors and empty replies.
        """
        client = await self._get_client()
        messages = self._prepare_request_messages(prompt_text, parts)

        log.info(f"[{context}] Calling model '{self.model}' with {len(parts)} document(s).")
        start_time = time.perf_counter()

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except APIConnectionError as e:
            duration = time.perf_counter() - start_time
            log.error(f"[{context}] Could not reach the model API. Duration: {duration:.2f}s: {e}")
            raise ServiceError(f"Network error while contacting the model: {e}") from e
        except APIStatusError as e:
            duration = time.perf_counter() - start_time
            log.error(f"[{context}] Model API returned status {e.status_code}. Duration: {duration:.2f}s: {e}")
            raise ServiceError(f"The model API returned an error ({e.status_code}): {e.message}",
                               {"status_code": e.status_code}) from e
        except OpenAIError as e:
            log.error(f"[{context}] Model client error: {e.__class__.__name__} - {e}")
            raise ServiceError(str(e)) from e

        duration = time.perf_counter() - start_time
        text = None
        if response.choices and response.choices[0].message:
            text = response.choices[0].message.content
        if not text:
            log.warning(f"[{context}] Model returned an empty response. Duration: {duration:.2f}s.")
            raise ServiceError(EMPTY_RESPONSE_MESSAGE)

        if response.usage:
            log.info(f"[{context}] LLM call successful. Duration: {duration:.2f}s. "
                     f"Tokens -> Prompt: {response.usage.prompt_tokens}, "
                     f"Completion: {response.usage.completion_tokens}, "
                     f"Total: {response.usage.total_tokens}")
        else:
            log.info(f"[{context}] LLM call successful. Duration: {duration:.2f} seconds. Usage data not available.")
        return text

    async def close(self):
        if self._client and not self._client.is_closed():
            await self._client.close()
            log.info("Closed OpenAI AsyncClient.")
        self._client = None
        self._client_key = None
