"""
Utility functions for the clinician assistant.

Helpers for turning LLM tool-call payloads into arguments and for logging
tool traffic without leaking sensitive fields.
"""

import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

SENSITIVE_TOOL_ARGS = ("password", "email", "phone")
REDACTED = "[REDACTED]"


def safe_parse_json_record(raw: Any) -> Dict[str, Any]:
    """
    Parse a tool-call argument payload as a flat JSON object.

    Malformed JSON, and JSON that is not an object, yield an empty dict.

    Args:
        raw: Argument string from the LLM

    Returns:
        Parsed arguments, or {} if the payload is unusable
    """
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        logger.debug(f"Malformed tool arguments ignored: {raw[:100]!r}")
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def sanitize_tool_args(args: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of tool arguments with sensitive values redacted for logging."""
    sanitized = dict(args)
    for key in SENSITIVE_TOOL_ARGS:
        if key in sanitized:
            sanitized[key] = REDACTED
    return sanitized


def summarize_tool_result(result: Any) -> str:
    """
    One-line description of a tool result for logs.

    Examples: "null", "array(3)", "object(id=...)", "error(patient-not-found)".
    """
    if result is None:
        return "null"
    if isinstance(result, list):
        return f"array({len(result)})"
    if isinstance(result, dict):
        if isinstance(result.get("id"), str):
            return f"object(id={result['id']})"
        if result.get("success") is False and "error" in result:
            return f"error({result['error']})"
        if "formatted_message" in result:
            return "formatted_message"
        return f"object({len(result)} keys)"
    return str(result)
