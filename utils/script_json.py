import json
import re
from typing import Any

FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def parse_model_json(content: str) -> Any:
    """
    Parse JSON out of an LLM reply.

    Strips markdown fences and control characters, then reads from the first
    opening bracket to its last closing one.

    Raises:
        ValueError: If no JSON object or array can be read.
    """
    if not content or not content.strip():
        raise ValueError("Empty content")

    cleaned = CONTROL_RE.sub("", FENCE_RE.sub("", content.strip()))
    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    if not starts:
        raise ValueError("No JSON found in content")

    start = min(starts)
    end = cleaned.rfind("}" if cleaned[start] == "{" else "]")
    if end < start:
        raise ValueError("Unterminated JSON in content")
    return json.loads(cleaned[start:end + 1])
