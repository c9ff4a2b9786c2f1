"""JSON extraction utilities for parsing LLM responses."""

import json
import logging
import re
from typing import Any

from storyboard.utils.exceptions import JSONParseError

logger = logging.getLogger(__name__)


def clean_llm_text(text: str) -> str:
    """Clean LLM output text by removing thinking tags and other artifacts.

    Args:
        text: Raw text from LLM output.

    Returns:
        Cleaned text suitable for use as a prompt.
    """
    if not text:
        return text

    # Remove <think>...</think> blocks (including content)
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL)
    cleaned = re.sub(r"</?think>", "", cleaned)

    # Special tokens like <|endoftext|>
    cleaned = re.sub(r"<\|.*?\|>", "", cleaned)

    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def _try_parse_json(json_str: str) -> dict[str, Any] | list[Any] | None:
    """Try to parse a string as JSON.

    Returns:
        Parsed JSON or None if parsing fails.
    """
    try:
        parsed: dict[str, Any] | list[Any] = json.loads(json_str.strip())
        return parsed
    except json.JSONDecodeError as e:
        logger.debug("try_parse failed: %s (input preview: %.100s...)", e, json_str)
        return None


def _close_truncated_json(text: str) -> dict[str, Any] | list[Any] | None:
    """Close the open strings, arrays and objects of a response cut off by a token limit."""
    closers: list[str] = []
    in_string = False
    escape_next = False
    for char in text:
        if escape_next:
            escape_next = False
        elif char == "\\":
            escape_next = True
        elif char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char in "{[":
            closers.append("}" if char == "{" else "]")
        elif char in "}]" and closers:
            closers.pop()

    if not closers:
        return None

    repaired = text + '"' if in_string else text.rstrip(",: \n\t")
    repaired += "".join(reversed(closers))
    result = _try_parse_json(repaired)
    if result is not None:
        logger.info("Repaired truncated JSON (%d structures closed)", len(closers))
    return result


def extract_json(response: str, strict: bool = True) -> dict[str, Any] | list[Any] | None:
    """Extract a JSON object or array from an LLM response.

    Tries multiple extraction strategies in order:
    1. ```json code block (markdown standard)
    2. ``` code block (without language marker)
    3. Raw JSON object {...} or array [...]
    4. Closing the braces of a truncated object

    Args:
        response: The LLM response text.
        strict: If True (default), raises JSONParseError on failure.
                If False, returns None on failure.

    Returns:
        Parsed JSON (dict or list), or None only if strict=False and parsing fails.

    Raises:
        JSONParseError: If strict=True and no valid JSON could be extracted.
    """
    # Some models output reasoning in <think> tags
    response = re.sub(r"<think>.*?</think>", "", response, flags=re.DOTALL)
    response = re.sub(r"</?think>", "", response)

    json_match = re.search(r"```json\s*(.*?)\s*```", response, re.DOTALL)
    if json_match:
        result = _try_parse_json(json_match.group(1))
        if result is not None:
            return result
        logger.debug("Found ```json block but failed to parse")

    code_match = re.search(r"```\s*(.*?)\s*```", response, re.DOTALL)
    if code_match:
        result = _try_parse_json(code_match.group(1))
        if result is not None:
            return result
        logger.debug("Found ``` block but failed to parse")

    json_obj_match = re.search(r"(\{[\s\S]*\})", response)
    if json_obj_match:
        result = _try_parse_json(json_obj_match.group(1))
        if result is not None:
            return result
        logger.debug("Found raw JSON object but failed to parse")

    json_arr_match = re.search(r"(\[[\s\S]*\])", response)
    if json_arr_match:
        result = _try_parse_json(json_arr_match.group(1))
        if result is not None:
            return result
        logger.debug("Found raw JSON array but failed to parse")

    stripped = response.strip()
    if stripped.startswith(("{", "[")):
        result = _close_truncated_json(stripped)
        if result is not None:
            return result

    error_msg = f"No valid JSON found in response. Response preview: {response[:200]}..."
    if strict:
        logger.error(error_msg)
        raise JSONParseError(
            error_msg,
            response_preview=response[:500],
            expected_type="dict or list",
        )
    logger.debug(error_msg)
    return None
