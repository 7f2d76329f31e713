#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Document loader tests: decoder selection and failure reporting."""

import io

import pytest
from docx import Document

from procurement.rfx.document_loader import (
    DocumentDecodeError, decode, detect_kind, guess_mime, load_text, meaningful_chars,
)


def _docx_bytes(paragraphs, table_rows=()):
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table_rows:
        table = doc.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


class TestDetectKind:

    def test_by_extension(self):
        assert detect_kind("", "quote.PDF") == "pdf"
        assert detect_kind("", "quote.docx") == "docx"
        assert detect_kind("", "quote.txt") == "text"

    def test_by_mime(self):
        assert detect_kind("application/pdf", "upload") == "pdf"
        assert detect_kind(
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document", ""
        ) == "docx"

    def test_guess_mime(self):
        assert guess_mime("a.pdf") == "application/pdf"
        assert guess_mime("a.unknown") == "application/octet-stream"


class TestDecode:

    def test_plain_text(self):
        assert decode("Total: Rs.1000".encode("utf-8"), "text/plain", "q.txt") == "Total: Rs.1000"

    def test_non_utf8_bytes_replaced(self):
        text = decode(b"Price \xff\xfe 100", "text/plain", "q.txt")
        assert "Price" in text and "100" in text

    def test_docx_paragraphs_and_tables(self):
        data = _docx_bytes(["Vendor: Acme Corp", "Total: $5,000"],
                           table_rows=[("Item", "Qty"), ("Laptop", "20")])
        text = decode(data, "", "quote.docx")
        assert "Vendor: Acme Corp" in text
        assert "Laptop | 20" in text

    def test_empty_pdf_is_decode_error(self):
        with pytest.raises(DocumentDecodeError):
            decode(b"", "application/pdf", "empty.pdf")

    def test_corrupt_docx_is_decode_error(self):
        with pytest.raises(DocumentDecodeError):
            decode(b"PK\x03\x04 not really a zip", "", "broken.docx")


class TestLoadText:

    def test_success_has_no_error(self):
        loaded = load_text(b"hello world", "text/plain", "a.txt")
        assert loaded.text == "hello world"
        assert loaded.decoder == "text"
        assert loaded.error is None

    @pytest.mark.parametrize("data,name", [
        (b"", "empty.pdf"),
        (b"%PDF-1.4\n1 0 obj << /Type /Catalog", "truncated.pdf"),
        (b"\x00\x01\x02garbage", "broken.docx"),
        (None, "none.txt"),
    ])
    def test_never_raises(self, data, name):
        loaded = load_text(data, "", name)
        assert isinstance(loaded.text, str)

    def test_failed_decoder_reported(self):
        loaded = load_text(b"", "application/pdf", "empty.pdf")
        assert loaded.decoder == "raw_fallback"
        assert "PDF extraction error" in loaded.error

    def test_meaningful_chars(self):
        assert meaningful_chars("  \n\t--- ") == 0
        assert meaningful_chars("Rs.1000") == 6
        assert meaningful_chars(None) == 0
