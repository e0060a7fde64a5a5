# src/chatstore/providers/openai_provider.py
"""
OpenAI API provider implementation for chatstore.

Talks to the OpenAI chat completions API (or any compatible endpoint via
`base_url`) and adapts its incremental stream chunks to the cumulative
deltas the session core expects.
"""

import asyncio
import logging
import os
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError

from ..config.models import ModelConfig
from ..exceptions import AuthenticationError, ConfigError, ProviderError
from .base import BaseProvider, CompletionStream, ContextPayload, StreamDelta

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """
    chatstore provider for the OpenAI chat completions API.
    """
    _client: Optional[AsyncOpenAI] = None

    def __init__(self, config: Dict[str, Any], client: Optional[AsyncOpenAI] = None):
        """
        Initializes the OpenAIProvider.

        Args:
            config: Provider settings containing:
                    'api_key' (optional): OpenAI API key. Defaults to env var OPENAI_API_KEY.
                    'base_url' (optional): Custom API endpoint URL.
                    'timeout' (optional): Request timeout in seconds (default: 60).
            client: Pre-built AsyncOpenAI client, mainly for tests.
        """
        self.api_key = config.get('api_key') or os.environ.get('OPENAI_API_KEY')
        self.base_url = config.get('base_url')
        self.timeout = float(config.get('timeout') or 60.0)

        if client is not None:
            self._client = client
            return

        if not self.api_key:
            logger.warning("OpenAI API key not found in config or environment variable OPENAI_API_KEY. "
                           "Requests will fail with 401 until it is set.")
        try:
            self._client = AsyncOpenAI(
                api_key=self.api_key or "missing",
                base_url=self.base_url,
                timeout=self.timeout,
            )
            logger.debug("AsyncOpenAI client initialized.")
        except OpenAIError as e:
            logger.error(f"Failed to initialize AsyncOpenAI client: {e}", exc_info=True)
            raise ConfigError(f"OpenAI client initialization failed: {e}")

    def get_name(self) -> str:
        return "openai"

    def _build_payload(self, context: ContextPayload) -> List[Dict[str, str]]:
        payload = []
        for msg in context:
            role_str = msg.role.value if isinstance(msg.role, Enum) else str(msg.role)
            payload.append({"role": role_str, "content": msg.content})
        if not payload:
            raise ProviderError(self.get_name(), "No messages to send.")
        return payload

    def _request_kwargs(self, context: ContextPayload, model_config: ModelConfig) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": model_config.model,
            "messages": self._build_payload(context),
            "temperature": model_config.temperature,
            "presence_penalty": model_config.presence_penalty,
        }
        if model_config.max_tokens:
            kwargs["max_tokens"] = model_config.max_tokens
        return kwargs

    def _wrap_error(self, e: Exception) -> ProviderError:
        if isinstance(e, APIStatusError):
            logger.error(f"OpenAI API error: Status {e.status_code} - {e.message}")
            if e.status_code == 401:
                return AuthenticationError(self.get_name(), f"Authentication failed (Invalid API Key? Status 401): {e.message}")
            return ProviderError(self.get_name(), f"OpenAI API Error (Status {e.status_code}): {e.message}",
                                 status_code=e.status_code)
        if isinstance(e, APIConnectionError):
            logger.error(f"Connection to OpenAI API failed: {e}")
            return ProviderError(self.get_name(), f"Connection failed: {e}")
        if isinstance(e, asyncio.TimeoutError):
            logger.error(f"Request to OpenAI API timed out after {self.timeout} seconds.")
            return ProviderError(self.get_name(), f"Request timed out after {self.timeout}s.")
        logger.error(f"Unexpected error during OpenAI chat completion: {e}", exc_info=True)
        return ProviderError(self.get_name(), f"An unexpected error occurred: {e}")

    async def chat_completion(self, context: ContextPayload, model_config: ModelConfig) -> str:
        if not self._client:
            raise ProviderError(self.get_name(), "OpenAI client not initialized.")
        kwargs = self._request_kwargs(context, model_config)
        logger.debug(f"Sending request to OpenAI API: model='{kwargs['model']}', stream=False, num_messages={len(kwargs['messages'])}")
        try:
            response = await self._client.chat.completions.create(stream=False, **kwargs)
        except (OpenAIError, asyncio.TimeoutError) as e:
            raise self._wrap_error(e) from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def stream_chat_completion(self, context: ContextPayload, model_config: ModelConfig) -> CompletionStream:
        if not self._client:
            raise ProviderError(self.get_name(), "OpenAI client not initialized.")
        kwargs = self._request_kwargs(context, model_config)
        return CompletionStream(self._stream(kwargs), name=f"{self.get_name()}:{kwargs['model']}")

    async def _stream(self, kwargs: Dict[str, Any]) -> AsyncIterator[StreamDelta]:
        logger.debug(f"Sending request to OpenAI API: model='{kwargs['model']}', stream=True, num_messages={len(kwargs['messages'])}")
        text = ""
        try:
            response = await self._client.chat.completions.create(stream=True, **kwargs)
            try:
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    piece = chunk.choices[0].delta.content
                    if piece:
                        text += piece
                        yield StreamDelta(text)
            finally:
                await response.close()
        except (OpenAIError, asyncio.TimeoutError) as e:
            raise self._wrap_error(e) from e
        yield StreamDelta(text, done=True)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
