# pipeline.py
import logging

from config import Settings, get_settings
from errors import TooShort
from prompt import build_request
from schemas import StudyPackage
from utils import normalize_payload

logger = logging.getLogger(__name__)


def validate_text(text: str, minimum: int = 50) -> str:
    """Return the trimmed text, or raise TooShort if it is empty or below `minimum` chars."""
    trimmed = (text or "").strip()
    if not trimmed or len(trimmed) < minimum:
        raise TooShort(minimum=minimum, actual=len(trimmed))
    return trimmed


def analyze_text(text: str, client, settings: Settings = None) -> StudyPackage:
    """
    Validate -> build prompt -> one model call -> normalize.
    Raises TooShort, UpstreamError or MalformedResponse; never returns a partial package.
    """
    settings = settings or get_settings()
    trimmed = validate_text(text, settings.min_text_length)
    request = build_request(trimmed)
    raw = client.analyze(request)
    package = normalize_payload(raw)
    logger.info(
        "Study package ready: %d concepts, %d questions",
        len(package.key_concepts), len(package.quiz),
    )
    return package
