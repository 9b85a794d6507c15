"""Extraction of structured JSON blocks embedded in free-text model replies."""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

import pydantic

from .core import ChatReply, GrammarCorrectionSet

logger = logging.getLogger(__name__)

# A ```json fenced block, or a bare {...} that mentions "errors".
# Whichever starts first in the text wins.
STRUCTURED_BLOCK_RE = re.compile(
    r"```json\n?([\s\S]*?)\n?```|(\{[\s\S]*?\"errors\"[\s\S]*?\})"
)
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*?\}")


def extract_structured_block(text: str) -> Tuple[Optional[Any], str]:
    """Finds and decodes the first structured block in ``text``.

    Args:
        text: Raw reply from the model.

    Returns:
        ``(payload, remainder)``. When a block decodes, ``remainder`` is the
        text with the block (fences included) removed and stripped. When there
        is no block, or the block is not valid JSON, the payload is None and
        the remainder is ``text`` untouched.
    """
    match = STRUCTURED_BLOCK_RE.search(text)
    if match is None:
        return None, text

    candidate = match.group(1) if match.group(1) is not None else match.group(2)
    try:
        payload = json.loads(candidate.strip())
    except ValueError as e:
        logger.warning("Could not decode structured block: %s", e)
        return None, text

    remainder = text.replace(match.group(0), "", 1).strip()
    return payload, remainder


def parse_response(text: str) -> ChatReply:
    """Splits a model reply into visible text and grammar corrections.

    A reply without a decodable block, or whose block does not look like a
    correction set, comes back whole with no corrections. This function never
    raises.
    """
    try:
        payload, remainder = extract_structured_block(text)
        if payload is None:
            return ChatReply(ai_message=text)

        if isinstance(payload, list):
            payload = {"errors": payload}

        try:
            corrections = GrammarCorrectionSet.model_validate(payload)
        except pydantic.ValidationError as e:
            logger.warning("Structured block is not a correction set: %s", e)
            return ChatReply(ai_message=text)

        return ChatReply(ai_message=remainder, grammar_corrections=corrections)
    except Exception:
        logger.exception("Unexpected failure while parsing model reply")
        return ChatReply(ai_message=text)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Decodes the first brace-delimited object in ``text``, if any."""
    match = JSON_OBJECT_RE.search(text)
    if match is None:
        return None
    try:
        decoded = json.loads(match.group(0))
    except ValueError:
        logger.warning("Brace-delimited text is not valid JSON")
        return None
    return decoded if isinstance(decoded, dict) else None
