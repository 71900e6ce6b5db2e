"""Translation provider abstractions."""

from __future__ import annotations

import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from openai import AsyncAzureOpenAI, AsyncOpenAI

from .configuration import TranscloneConfig
from .errors import (
    TranslationProviderConfigurationError,
    TranslationProviderError,
)

SYSTEM_PROMPT = (
    "You are a professional translator. Return only JSON. "
    "Translate the provided text blocks into the requested language. "
    "Preserve formatting, placeholders, numbers, and markup: keep every HTML "
    "tag (for example <h2>, <p>, <strong>) and attribute exactly as provided "
    "and translate only the human-readable text. If a block contains the "
    "separator '|||', keep every occurrence verbatim and in place. "
    "Return exactly one entry per input block, using the same id. "
    "Respond strictly with an object shaped as "
    '{"translations": [{"id": "...", "translated": "..."}]}. '
    "Do not add commentary. Do not wrap the JSON in markdown code fences."
)


class TranslationProvider(ABC):
    """Abstract adapter for translation providers."""

    name = "abstract"

    @abstractmethod
    async def translate(
        self,
        blocks: Mapping[str, str],
        *,
        target_language: str,
        source_language: str | None = None,
        model: str | None = None,
    ) -> Dict[str, str]:
        """Translate named text blocks and return a mapping with the same keys."""


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    async def translate(
        self,
        blocks: Mapping[str, str],
        *,
        target_language: str,
        source_language: str | None = None,
        model: str | None = None,
    ) -> Dict[str, str]:
        return dict(blocks)


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses OpenAI models via the Responses API."""

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"

    def __init__(
        self,
        settings: TranscloneConfig,
        *,
        debug: bool = False,
        client: Any | None = None,
    ) -> None:
        self.settings = settings
        self.debug = debug
        self.provider_kind = settings.LLM_PROVIDER
        if client is not None:
            self._client = client
            self._default_model = settings.TRANSCLONE_MODEL or self.DEFAULT_MODEL
        else:
            self._client, self._default_model = self._build_client()

    def _build_client(self) -> tuple[Any, str]:
        if self.provider_kind == "azure_openai":
            return self._build_azure_client()

        return self._build_openai_client()

    def _build_openai_client(self) -> tuple[Any, str]:
        api_key = self.settings.OPENAI_API_KEY
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        model = self.settings.TRANSCLONE_MODEL or self.DEFAULT_MODEL
        return AsyncOpenAI(api_key=api_key), model

    def _build_azure_client(self) -> tuple[Any, str]:
        settings = self.settings
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        client = AsyncAzureOpenAI(
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
        )
        return client, settings.AZURE_OPENAI_DEPLOYMENT_NAME  # type: ignore[return-value]

    async def translate(
        self,
        blocks: Mapping[str, str],
        *,
        target_language: str,
        source_language: str | None = None,
        model: str | None = None,
    ) -> Dict[str, str]:
        if not blocks:
            return {}

        payload = [
            {"id": block_id, "text": text} for block_id, text in blocks.items()
        ]
        user_prompt = {
            "target_language": target_language,
            "source_language": source_language,
            "blocks": payload,
        }
        self._log_debug("provider.request.payload", user_prompt)

        response_items = await self._invoke_model(
            system_prompt=SYSTEM_PROMPT,
            user_payload=user_prompt,
            model=model or self._default_model,
        )
        self._log_debug("provider.response.items", response_items)

        mapping: Dict[str, str] = {}
        for item in response_items:
            if not isinstance(item, dict):
                raise TranslationProviderError(
                    "Translation provider response malformed: expected objects."
                )
            block_id = item.get("id")
            translated = item.get("translated")
            if not isinstance(block_id, str) or not isinstance(translated, str):
                raise TranslationProviderError(
                    "Translation provider response malformed: missing fields."
                )
            if block_id in blocks:
                mapping[block_id] = translated

        self._log_debug("provider.response.mapping", mapping)
        return mapping

    async def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[dict[str, Any]]:
        """Call the Responses API and return structured JSON data."""

        try:
            response = await self._client.responses.create(
                model=model,
                input=[
                    {
                        "role": "system",
                        "content": [
                            {"type": "input_text", "text": system_prompt},
                        ],
                    },
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_text",
                                "text": json.dumps(user_payload, ensure_ascii=False),
                            }
                        ],
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))
        return self._extract_translations(response)

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[transclone][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK objects into JSON-friendly data."""

        for attr in ("model_dump_json", "model_dump"):
            candidate = getattr(response, attr, None)
            if candidate:
                try:
                    data = candidate()
                    if isinstance(data, str):
                        return json.loads(data)
                    return data
                except Exception:
                    continue
        return str(response)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()

    def _extract_translations(self, response: Any) -> list[dict[str, Any]]:
        """Extract the structured translation list from a Responses API result."""

        output_text = getattr(response, "output_text", None)
        if output_text:
            return self._normalise_translations(str(output_text))

        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text_value = getattr(part, "text", None)
                if text_value:
                    return self._normalise_translations(str(text_value))

        raise TranslationProviderError(
            "Translation provider response empty or unrecognised."
        )

    def _normalise_translations(self, payload: Any) -> list[dict[str, Any]]:
        """Normalise raw payloads into a list of translation dictionaries."""

        if isinstance(payload, str):
            payload = self._strip_code_fence(payload)
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise TranslationProviderError(
                    f"Translation provider returned invalid JSON: {exc}"
                ) from exc

        if isinstance(payload, dict):
            translations = payload.get("translations")
            if isinstance(translations, list):
                return translations

        if isinstance(payload, list):
            return payload

        raise TranslationProviderError(
            "Translation provider response malformed: could not find translations list."
        )


class LegacyOpenAITranslationProvider(OpenAITranslationProvider):
    """Translation provider that uses the Chat Completions API for compatibility."""

    name = "legacy-openai"

    async def _invoke_model(
        self,
        *,
        system_prompt: str,
        user_payload: dict,
        model: str,
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.chat.completions.create(
                model=model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": json.dumps(user_payload, ensure_ascii=False),
                    },
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        content: str | None = None
        for choice in getattr(response, "choices", None) or []:
            message = getattr(choice, "message", None)
            message_content = getattr(message, "content", None)
            if message_content:
                content = str(message_content)
                break

        if content is None:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised."
            )

        return self._normalise_translations(content)


def build_provider(
    name: str | None,
    settings: TranscloneConfig,
    *,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name."""

    normalized = (name or "openai").strip().lower()
    if normalized in {"openai", "gpt", "default"}:
        return OpenAITranslationProvider(settings, debug=debug)
    if normalized in {"legacy-openai", "legacy_openai", "legacy", "openai-legacy"}:
        return LegacyOpenAITranslationProvider(settings, debug=debug)
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider()
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )
