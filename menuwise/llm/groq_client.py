from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any

from groq import Groq

from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class GenerativeError(Exception):
    """Base class for failures at the generative service boundary."""


class GenerativeUnavailable(GenerativeError):
    """The service is disabled or has no credentials configured."""


class GenerativeEmptyResponse(GenerativeError):
    """The service answered with no text."""


class GenerativeParseError(GenerativeError):
    """The service answered with text that is not a JSON object."""


def image_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _build_messages(
    system_prompt: str,
    user_prompt: str,
    image: tuple[bytes, str] | None,
) -> list[dict[str, Any]]:
    if image is None:
        user_content: Any = user_prompt
    else:
        data, mime_type = image
        user_content = [
            {"type": "text", "text": user_prompt},
            {"type": "image_url", "image_url": {"url": image_data_url(data, mime_type)}},
        ]
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_content},
    ]


def complete_text(
    system_prompt: str,
    user_prompt: str,
    image: tuple[bytes, str] | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    max_tokens: int | None = None,
    temperature: float = 0.0,
) -> str:
    """
    Submit a prompt (and optional image) and return the raw response text.

    Always requests JSON-object mode. Raises ``GenerativeUnavailable`` when the
    client is disabled and ``GenerativeEmptyResponse`` on blank output; any
    transport error from the Groq SDK propagates to the caller.
    """
    if not config.available:
        raise GenerativeUnavailable("generative service is not configured")

    client = Groq(api_key=config.api_key, timeout=config.timeout)
    response = client.chat.completions.create(
        model=config.vision_model if image is not None else config.model,
        messages=_build_messages(system_prompt, user_prompt, image),
        max_tokens=max_tokens or config.max_tokens,
        temperature=temperature,
        response_format={"type": "json_object"},
    )

    content = (response.choices[0].message.content or "").strip()
    if not content:
        raise GenerativeEmptyResponse("empty response from generative service")
    return content


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse ``text`` as a JSON object, salvaging an object wrapped in prose."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise GenerativeParseError("response is not JSON") from None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise GenerativeParseError("response is not JSON") from exc

    if not isinstance(parsed, dict):
        raise GenerativeParseError("response is not a JSON object")
    return parsed


def complete_json(
    system_prompt: str,
    user_prompt: str,
    image: tuple[bytes, str] | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    max_tokens: int | None = None,
    temperature: float = 0.0,
) -> dict[str, Any]:
    text = complete_text(
        system_prompt,
        user_prompt,
        image=image,
        config=config,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    return parse_json_object(text)
