import io

import docx
import pytest

from services.parsers import DOCX_MIMETYPE, extract_text_from_file, parse_model_json, strip_rtf


def test_parse_model_json_strips_code_fences():
    assert parse_model_json('```json\n{"summary": "ok"}\n```') == {"summary": "ok"}


def test_parse_model_json_repairs_truncated_output():
    assert parse_model_json('{"skills": ["python", "sql"], "overallScore": "7"') == {
        "skills": ["python", "sql"],
        "overallScore": "7",
    }


def test_parse_model_json_rejects_empty_response():
    with pytest.raises(ValueError):
        parse_model_json("   ")


def test_plain_text_is_decoded():
    assert extract_text_from_file("Zoë Example".encode(), "text/plain", "cv.txt") == "Zoë Example"


def test_rtf_control_words_are_removed():
    text = extract_text_from_file(rb"{\rtf1\ansi Hello\par World}", "application/rtf", "cv.rtf")

    assert "Hello" in text
    assert "World" in text
    assert "\\" not in text
    assert "{" not in text


def test_docx_paragraphs_are_extracted():
    document = docx.Document()
    document.add_paragraph("Jane Doe")
    document.add_paragraph("Senior Python Developer")
    buffer = io.BytesIO()
    document.save(buffer)

    text = extract_text_from_file(buffer.getvalue(), DOCX_MIMETYPE, "cv.docx")

    assert text == "Jane Doe\nSenior Python Developer"


def test_broken_pdf_yields_a_note_instead_of_raising():
    text = extract_text_from_file(b"not a pdf at all", "application/pdf", "cv.pdf")

    assert text.startswith("Failed to extract text from cv.pdf")


def test_legacy_word_documents_are_not_extracted():
    text = extract_text_from_file(b"\xd0\xcf\x11\xe0", "application/msword", "cv.doc")

    assert "not currently supported" in text


def test_strip_rtf_keeps_paragraph_breaks():
    assert strip_rtf(r"{\rtf1 First\par Second}") == "First\n Second"
