# utils.py
import json
import re

from pydantic import ValidationError

from errors import MalformedResponse
from schemas import StudyPackage

# ```json ... ``` (language tag optional), with whitespace around either fence
FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\n?(.*?)\n?\s*```\s*$", re.S)

REQUIRED_FIELDS = ("summary", "keyConcepts", "quiz")


def strip_fences(text: str) -> str:
    m = FENCE_RE.match(text)
    return (m.group(1) if m else text).strip()


def _describe(err: ValidationError) -> str:
    first = err.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ()))
    return f"{where}: {first.get('msg')}" if where else first.get("msg", str(err))


def normalize_payload(raw: str) -> StudyPackage:
    """Turn raw model output into a validated StudyPackage or raise MalformedResponse."""
    content = strip_fences(raw or "")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponse("Model response is not a JSON object.")

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise MalformedResponse("Model response is missing a non-empty 'summary'.")
    for field in REQUIRED_FIELDS[1:]:
        value = data.get(field)
        if not isinstance(value, list) or not value:
            raise MalformedResponse(f"Model response is missing a non-empty '{field}' list.")

    try:
        return StudyPackage.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Model response does not match the study package schema ({_describe(e)}).") from e
