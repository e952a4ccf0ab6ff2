import io
import re
import json
import logging

import docx
import pdfplumber
from json_repair import repair_json


logger = logging.getLogger(__name__)

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def extract_json_from_gemini_response(text: str) -> str:
    """
    Removes markdown code fences ("```json", "```") around a model response.
    """
    cleaned = re.sub(r"^```[\w]*\n*", "", (text or "").strip())
    cleaned = re.sub(r"\n*```$", "", cleaned)
    return cleaned.strip()


def parse_model_json(text: str):
    """Parse a model response that should be JSON but often is not quite.

    Fences are stripped, then the text is parsed as-is and, failing that,
    repaired with json_repair. Raises ValueError if nothing usable remains.
    """
    cleaned = extract_json_from_gemini_response(text)
    if not cleaned:
        raise ValueError("Empty model response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        repaired = repair_json(cleaned, return_objects=True)
        if repaired in ("", None):
            raise ValueError("Could not extract JSON from model response")
        return repaired


def extract_text_from_pdf(pdf_file: bytes) -> str:
    text = ""
    with pdfplumber.open(io.BytesIO(pdf_file)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text += page_text + "\n"
    return text


def extract_text_from_docx(docx_file: bytes) -> str:
    document = docx.Document(io.BytesIO(docx_file))
    return "\n".join(p.text for p in document.paragraphs if p.text)


def extract_text_from_file(data: bytes, mimetype: str, filename: str = "") -> str:
    """Best-effort plain text for the analyzer. Never raises, unreadable files yield a note."""
    try:
        if mimetype.startswith("text/") and mimetype != "text/rtf":
            return data.decode("utf-8", errors="replace")

        if mimetype == "application/pdf":
            text = extract_text_from_pdf(data)
            if text.strip():
                return text
            return f"PDF document {filename} contains no extractable text."

        if mimetype == DOCX_MIMETYPE:
            text = extract_text_from_docx(data)
            if text.strip():
                return text
            return "Empty document. Please ensure the document contains text content."

        if mimetype in ("text/rtf", "application/rtf"):
            return strip_rtf(data.decode("latin-1", errors="replace"))

    except Exception as e:
        logger.warning(f"Text extraction failed for '{filename}' ({mimetype}): {e}")
        return f"Failed to extract text from {filename}. Error: {e}"

    return (
        f"File uploaded: {filename} ({mimetype})\n"
        "This file type is not currently supported for automatic text extraction.\n"
        "Please use PDF, DOCX, or TXT formats for best results."
    )


def strip_rtf(rtf: str) -> str:
    # drop control words, groups and escaped hex, keep the visible text
    text = re.sub(r"\\'[0-9a-fA-F]{2}", "", rtf)
    text = re.sub(r"\\par[d]?\b", "\n", text)
    text = re.sub(r"\\[a-zA-Z]+-?\d* ?", "", text)
    text = re.sub(r"[{}]", "", text)
    return re.sub(r"[ \t]+", " ", text).strip()
