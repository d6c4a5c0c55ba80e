# extractor.py
import io
import os

from bs4 import BeautifulSoup
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from errors import ExtractionError

# Limit size for LLM cost
MAX_CHARS = 40000
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

SUPPORTED = (".pdf", ".html", ".htm", ".txt", ".md")


def _pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except PdfReadError as e:
        raise ExtractionError(f"Could not read PDF: {e}") from e
    text = "\n\n".join(p for p in pages if p)
    if not text.strip():
        raise ExtractionError("The PDF looks scanned or has no selectable text.")
    return text


def _html_text(data: bytes) -> str:
    soup = BeautifulSoup(data, "html.parser")
    content = soup.find("main") or soup.find("article") or soup.body or soup

    # Gather paragraphs + headings + list items
    parts = []
    for el in content.select("h1, h2, h3, h4, p, li"):
        text = el.get_text(" ", strip=True)
        if text:
            parts.append(text)
    return "\n".join(parts) or content.get_text("\n", strip=True)


def _plain_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExtractionError("Text files must be UTF-8 encoded.") from e


def extract_text(filename: str, data: bytes) -> str:
    """
    Returns the plain text of an uploaded document (PDF, HTML, TXT or Markdown),
    capped at MAX_CHARS. Raises ExtractionError when nothing usable comes out.
    """
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in SUPPORTED:
        raise ExtractionError(f"Unsupported file type {ext or '(none)'}; upload one of {', '.join(SUPPORTED)}.")
    if not data:
        raise ExtractionError("The uploaded file is empty.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ExtractionError(f"The uploaded file is larger than {MAX_UPLOAD_BYTES // (1024 * 1024)} MB.")

    if ext == ".pdf":
        text = _pdf_text(data)
    elif ext in (".html", ".htm"):
        text = _html_text(data)
    else:
        text = _plain_text(data)

    text = text.strip()
    if not text:
        raise ExtractionError("No text could be extracted from the document.")
    if len(text) > MAX_CHARS:
        text = text[:MAX_CHARS]
    return text
