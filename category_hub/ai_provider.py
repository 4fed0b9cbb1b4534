"""
AI Provider abstraction layer - supports both Claude and OpenAI APIs.
Routes category mapping suggestion requests to the configured provider and
returns the decoded {"mappings": [...]} plan.
"""

import json
import logging
from typing import Dict, Optional

import anthropic
import openai

from .errors import ConfigurationError, SuggestionServiceError, SuggestionTimeoutError


SYSTEM_PROMPT = (
    "You are an expert multilingual e-commerce merchandiser. "
    "Map master categories to target shop categories. Return only valid JSON."
)

SUGGESTION_SCHEMA = {
    "type": "object",
    "required": ["mappings"],
    "additionalProperties": False,
    "properties": {
        "mappings": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["canonical_id", "target_id", "confidence", "reason"],
                "additionalProperties": False,
                "properties": {
                    "canonical_id": {"type": "string"},
                    "target_id": {"type": ["string", "null"]},
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                    "reason": {"type": ["string", "null"]},
                },
            },
        },
    },
}

DEFAULT_TIMEOUT = 120


def strip_code_fences(text: str) -> str:
    """Remove a markdown code block wrapper (```json ... ```) if present."""
    text = text.strip()
    if text.startswith("```"):
        logging.debug("Removing markdown code block wrapper from AI response")
        lines = text.split("\n")
        if lines[-1].strip().startswith("```"):
            lines = lines[1:-1]
        else:
            lines = lines[1:]
        text = "\n".join(lines).strip()
    return text


def parse_suggestion_response(text: Optional[str]) -> Dict:
    """
    Decode the AI reply into a {"mappings": [...]} dict.

    Raises:
        SuggestionServiceError: Empty reply, invalid JSON or no mappings list
    """
    if not text or not text.strip():
        error_msg = "AI response was empty"
        logging.error(error_msg)
        raise SuggestionServiceError(error_msg)

    cleaned = strip_code_fences(text)
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError as e:
        error_msg = f"Failed to parse AI mapping JSON response: {e}"
        logging.error(error_msg)
        logging.error(f"Raw response text: {cleaned[:500]}")
        raise SuggestionServiceError(error_msg) from e

    if not isinstance(decoded, dict) or not isinstance(decoded.get("mappings"), list):
        error_msg = "AI response is missing the 'mappings' list"
        logging.error(f"{error_msg}: {cleaned[:500]}")
        raise SuggestionServiceError(error_msg)

    return decoded


def _call_openai(payload: Dict, api_key: str, model: str, timeout: float) -> str:
    client = openai.OpenAI(api_key=api_key, timeout=timeout)

    logging.info(f"Sending category mapping request to OpenAI ({model})...")
    try:
        response = client.chat.completions.create(
            model=model,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "category_mapping_plan",
                    "strict": True,
                    "schema": SUGGESTION_SCHEMA,
                },
            },
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            temperature=0.2,
        )
    except openai.APITimeoutError as e:
        error_msg = f"OpenAI did not answer within {timeout}s"
        logging.error(f"❌ {error_msg}")
        raise SuggestionTimeoutError(error_msg) from e
    except openai.OpenAIError as e:
        error_msg = f"OpenAI category mapping request failed: {e}"
        logging.error(f"❌ {error_msg}")
        raise SuggestionServiceError(error_msg) from e

    usage = getattr(response, "usage", None)
    if usage is not None:
        logging.info(f"Token usage - Input: {usage.prompt_tokens}, Output: {usage.completion_tokens}")

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def _call_claude(payload: Dict, api_key: str, model: str, timeout: float) -> str:
    client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    system = (
        f"{SYSTEM_PROMPT}\n"
        f"Respond with a single JSON object matching this schema:\n"
        f"{json.dumps(SUGGESTION_SCHEMA)}"
    )

    logging.info(f"Sending category mapping request to Claude ({model})...")
    try:
        response = client.messages.create(
            model=model,
            max_tokens=8000,
            temperature=0.2,
            system=system,
            messages=[{
                "role": "user",
                "content": json.dumps(payload, ensure_ascii=False)
            }]
        )
    except anthropic.APITimeoutError as e:
        error_msg = f"Claude did not answer within {timeout}s"
        logging.error(f"❌ {error_msg}")
        raise SuggestionTimeoutError(error_msg) from e
    except anthropic.AnthropicError as e:
        error_msg = f"Claude category mapping request failed: {e}"
        logging.error(f"❌ {error_msg}")
        raise SuggestionServiceError(error_msg) from e

    usage = getattr(response, "usage", None)
    if usage is not None:
        logging.info(f"Token usage - Input: {usage.input_tokens}, Output: {usage.output_tokens}")

    if not response.content:
        return ""
    return response.content[0].text or ""


def request_category_suggestions(payload: Dict, cfg: Dict, timeout: Optional[float] = None) -> Dict:
    """
    Ask the configured AI provider for a category mapping plan.

    Args:
        payload: {canonical_categories, target_categories, instructions}
        cfg: Configuration dictionary
        timeout: Seconds to wait (defaults to AI_TIMEOUT)

    Returns:
        Decoded {"mappings": [...]} dict

    Raises:
        ConfigurationError: Missing API key or unknown provider
        SuggestionTimeoutError: Provider timed out
        SuggestionServiceError: Provider failed or replied with garbage
    """
    provider = (cfg.get("AI_PROVIDER") or "openai").strip().lower()
    if timeout is None:
        timeout = cfg.get("AI_TIMEOUT") or DEFAULT_TIMEOUT

    if provider == "openai":
        api_key = (cfg.get("OPENAI_API_KEY") or "").strip()
        model = cfg.get("OPENAI_MODEL") or "gpt-4o-mini"

        if not api_key:
            error_msg = "OpenAI API key not configured. Set OPENAI_API_KEY in config.json."
            logging.error(error_msg)
            raise ConfigurationError(error_msg)

        text = _call_openai(payload, api_key, model, timeout)

    elif provider == "claude":
        api_key = (cfg.get("CLAUDE_API_KEY") or "").strip()
        model = cfg.get("CLAUDE_MODEL") or "claude-sonnet-4-5-20250929"

        if not api_key:
            error_msg = "Claude API key not configured. Set CLAUDE_API_KEY in config.json."
            logging.error(error_msg)
            raise ConfigurationError(error_msg)

        text = _call_claude(payload, api_key, model, timeout)

    else:
        error_msg = f"Unknown AI provider: {provider}. Must be 'claude' or 'openai'."
        logging.error(error_msg)
        raise ConfigurationError(error_msg)

    return parse_suggestion_response(text)
