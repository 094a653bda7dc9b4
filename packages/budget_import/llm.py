"""Thin wrapper around the OpenAI Responses API.

The client is created once per entrypoint from :class:`~budget_import.config.Settings`
and handed to the categorizer and the document extractor. When no API key is
configured :func:`create_llm_client` returns ``None`` and callers degrade to
"unknown" categorization / empty extraction without touching the network.
"""

from __future__ import annotations

import json
import re
from typing import Any

from openai import OpenAI

from .config import Settings

_TEMPERATURE = 0.1
_MAX_OUTPUT_TOKENS = 4096
# One extraction reply carries every row of a multi-page statement.
_MAX_EXTRACT_OUTPUT_TOKENS = 8192

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)


def response_text(resp: Any) -> str:
    """Return the text output of a Responses API result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text can be located.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""

    return _FENCE_RE.sub("", text).strip()


def decode_json(text: str) -> Any:
    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON") from e


class LlmClient:
    """Model calls used by the import pipeline.

    ``openai`` may be any object exposing ``responses.create(**kwargs)``; tests
    pass a stub.
    """

    def __init__(
        self,
        openai: Any,
        *,
        categorize_model: str,
        extract_model: str,
    ) -> None:
        self._openai = openai
        self.categorize_model = categorize_model
        self.extract_model = extract_model

    def complete_json(self, *, instructions: str, prompt: str, model: str | None = None) -> Any:
        """Send a text prompt and decode the JSON reply."""

        resp = self._openai.responses.create(
            model=model or self.categorize_model,
            instructions=instructions,
            input=prompt,
            temperature=_TEMPERATURE,
            max_output_tokens=_MAX_OUTPUT_TOKENS,
        )
        return decode_json(response_text(resp))

    def complete_json_with_file(
        self,
        *,
        instructions: str,
        prompt: str,
        attachment: dict[str, Any],
        model: str | None = None,
    ) -> Any:
        """Send a prompt plus one attached file (``input_file``/``input_image`` part)."""

        resp = self._openai.responses.create(
            model=model or self.extract_model,
            instructions=instructions,
            input=[
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}, attachment],
                }
            ],
            temperature=_TEMPERATURE,
            max_output_tokens=_MAX_EXTRACT_OUTPUT_TOKENS,
        )
        return decode_json(response_text(resp))


def create_llm_client(settings: Settings) -> LlmClient | None:
    """Build the shared client, or ``None`` when no API key is configured."""

    if not settings.openai_api_key:
        return None
    kwargs: dict[str, Any] = {"api_key": settings.openai_api_key}
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    return LlmClient(
        OpenAI(**kwargs),
        categorize_model=settings.categorize_model,
        extract_model=settings.extract_model,
    )


__all__ = [
    "LlmClient",
    "create_llm_client",
    "decode_json",
    "response_text",
    "strip_code_fences",
]
