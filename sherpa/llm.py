"""One completion surface over the OpenAI, Anthropic and Gemini backends."""

from __future__ import annotations

import base64
from typing import Protocol, Sequence

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI

from sherpa.cancellation import CancellationToken
from sherpa.config import Config, ConfigSource
from sherpa.errors import ProviderError, ProviderNotConfiguredError

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

# SDK and transport failures surfaced as ProviderError
PROVIDER_ERRORS = (httpx.HTTPError, openai.APIError, genai_errors.APIError)


class Backend(Protocol):
    async def complete(
        self, system: str, prompt: str, model: str, images: Sequence[str] = ()
    ) -> str: ...


def _guess_mime(image_b64: str) -> str:
    if image_b64.startswith("/9j/"):
        return "image/jpeg"
    if image_b64.startswith("R0lGOD"):
        return "image/gif"
    if image_b64.startswith("UklGR"):
        return "image/webp"
    return "image/png"


def _build_vision_content(text: str, images: Sequence[str]) -> list[dict]:
    """Build a multimodal content array with text + base64-encoded images."""
    parts: list[dict] = [{"type": "text", "text": text}]
    for data in images:
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:{_guess_mime(data)};base64,{data}"},
        })
    return parts


class OpenAIBackend:
    def __init__(self, config: Config) -> None:
        self.config = config
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )

    async def complete(self, system: str, prompt: str, model: str, images: Sequence[str] = ()) -> str:
        user_content = _build_vision_content(prompt, images) if images else prompt
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user_content})
        response = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return response.choices[0].message.content or ""


class AnthropicBackend:
    """Anthropic Messages API over plain HTTP."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def _payload(self, system: str, prompt: str, model: str, images: Sequence[str]) -> dict:
        content: list[dict] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": _guess_mime(data), "data": data},
            }
            for data in images
        ]
        content.append({"type": "text", "text": prompt})
        payload: dict = {
            "model": model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            payload["system"] = system
        return payload

    async def complete(self, system: str, prompt: str, model: str, images: Sequence[str] = ()) -> str:
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        transport = httpx.AsyncHTTPTransport(retries=self.config.max_retries)
        async with httpx.AsyncClient(transport=transport, timeout=self.config.request_timeout) as client:
            resp = await client.post(
                ANTHROPIC_URL,
                json=self._payload(system, prompt, model, images),
                headers=headers,
            )
            resp.raise_for_status()
            data = resp.json()
        return "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )


class GeminiBackend:
    def __init__(self, config: Config) -> None:
        self.config = config
        self._client = genai.Client(api_key=config.api_key)

    async def complete(self, system: str, prompt: str, model: str, images: Sequence[str] = ()) -> str:
        contents: list = [
            types.Part.from_bytes(data=base64.b64decode(data), mime_type=_guess_mime(data))
            for data in images
        ]
        contents.append(prompt)
        response = await self._client.aio.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system or None,
                temperature=self.config.temperature,
                max_output_tokens=self.config.max_tokens,
            ),
        )
        return response.text or ""


BACKENDS: dict[str, type] = {
    "openai": OpenAIBackend,
    "anthropic": AnthropicBackend,
    "gemini": GeminiBackend,
}


class AIService:
    """Completion service shared by every agent.

    The config source is consulted on every call, so a new provider or key
    takes effect on the next request. Each distinct config snapshot gets its
    own backend; a changed snapshot replaces the cached backend instead of
    mutating it.
    """

    def __init__(self, config_source: ConfigSource) -> None:
        self._config_source = config_source
        self._snapshot: tuple[Config, Backend] | None = None

    def current_config(self) -> Config:
        return self._config_source()

    def has_valid_client(self) -> bool:
        return self.current_config().has_api_key()

    def _backend_for(self, config: Config) -> Backend:
        snapshot = self._snapshot
        if snapshot is not None and snapshot[0] == config:
            return snapshot[1]
        if not config.has_api_key():
            raise ProviderNotConfiguredError(
                f"No API key configured for provider {config.api_provider!r}"
            )
        backend = BACKENDS[config.api_provider](config)
        self._snapshot = (config, backend)
        return backend

    async def _run(
        self,
        system: str,
        prompt: str,
        model: str,
        images: Sequence[str],
        token: CancellationToken | None,
        config: Config,
    ) -> str:
        if token is not None:
            token.raise_if_cancelled()
        backend = self._backend_for(config)
        call = backend.complete(system, prompt, model, images)
        try:
            if token is None:
                return await call
            return await token.run(call)
        except PROVIDER_ERRORS as exc:
            raise ProviderError(f"{config.api_provider} request failed: {exc}") from exc

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        model: str | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        config = self.current_config()
        return await self._run(
            system_prompt, prompt, model or config.solution_model, (), token, config
        )

    async def complete_vision(
        self,
        prompt: str,
        images_b64: Sequence[str],
        system_prompt: str = "",
        model: str | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        config = self.current_config()
        return await self._run(
            system_prompt, prompt, model or config.extraction_model, tuple(images_b64), token, config
        )
