"""Tests for the HTML and print exports and the command line."""
import webbrowser

import pytest
from docx import Document

from writedoc_export import pipeline
from writedoc_export.cli import main
from writedoc_export.html_export import (
    POPUP_BLOCKED_MESSAGE,
    PopupBlockedError,
    open_print_window,
    print_document,
    render_html_document,
)


@pytest.mark.asyncio
async def test_html_export_is_a_standalone_page(invoice_html, invoice_fields):
    blob = await pipeline.export_document("html", invoice_html, invoice_fields)
    page = blob.data.decode("utf-8")
    assert blob.media_type.startswith("text/html")
    assert blob.extension == "html"
    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Invoice for Acme Corp</title>" in page
    assert "background-color: #f2f2f2" in page
    assert "Acme Corp" in page
    assert "window.print" not in page


@pytest.mark.asyncio
async def test_html_export_is_not_themed(invoice_html):
    blob = await pipeline.export_document("html", invoice_html)
    page = blob.data.decode("utf-8")
    assert "#2ECC71" not in page
    assert "placeholder-highlight" in page


@pytest.mark.asyncio
async def test_print_page_triggers_the_dialog(invoice_html):
    blob = await pipeline.export_document("print", invoice_html)
    page = blob.data.decode("utf-8")
    assert "window.print()" in page
    assert "500" in page


def test_title_is_escaped():
    page = render_html_document("<p>x</p>", title="A <b> & B")
    assert "<title>A &lt;b&gt; &amp; B</title>" in page


def test_blocked_window_is_signalled():
    with pytest.raises(PopupBlockedError) as excinfo:
        open_print_window("<html></html>", opener=lambda document: False)
    assert str(excinfo.value) == POPUP_BLOCKED_MESSAGE


def test_print_document_hands_the_page_to_the_opener():
    opened = []
    print_document("<p>Hello</p>", "Greeting", opener=lambda document: opened.append(document) or True)
    assert len(opened) == 1
    assert "<p>Hello</p>" in opened[0]
    assert "window.print()" in opened[0]


def test_cli_writes_pdf_with_the_produced_extension(tmp_path, invoice_html):
    source = tmp_path / "invoice.html"
    source.write_text(invoice_html, encoding="utf-8")
    assert main(["pdf", str(source), "--output", str(tmp_path / "out.bin")]) == 0
    assert (tmp_path / "out.pdf").read_bytes().startswith(b"%PDF")


def test_cli_names_the_file_after_the_title(tmp_path, monkeypatch, invoice_html):
    source = tmp_path / "invoice.html"
    source.write_text(invoice_html, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    status = main(["docx", str(source), "--fields", '{"Client Name": "Acme Corp"}',
                   "--theme", '{"secondaryColor": "#112233"}'])
    assert status == 0
    doc = Document(str(tmp_path / "Invoice for Acme Corp.docx"))
    assert doc.paragraphs[0].text == "Invoice for Acme Corp"


def test_cli_print_reports_blocked_windows(tmp_path, monkeypatch, capsys):
    source = tmp_path / "doc.html"
    source.write_text("<h1>Hello</h1>", encoding="utf-8")
    monkeypatch.setattr(webbrowser, "open_new", lambda url: False)
    assert main(["print", str(source)]) == 2
    assert POPUP_BLOCKED_MESSAGE in capsys.readouterr().err


def test_cli_rejects_bad_theme(tmp_path):
    source = tmp_path / "doc.html"
    source.write_text("<p>x</p>", encoding="utf-8")
    with pytest.raises(SystemExit):
        main(["pdf", str(source), "--theme", '{"primaryColor": "nope"}'])


def test_cli_reports_a_missing_input_file(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["pdf", str(tmp_path / "missing.html")])
    assert "missing.html" in str(excinfo.value)


def test_cli_strips_control_characters_from_the_input(tmp_path):
    source = tmp_path / "doc.html"
    source.write_bytes(b"<h1>Cle\x00an</h1>\r\n<p>Body\x07 text</p>\r\n")
    assert main(["html", str(source), "--output", str(tmp_path / "out")]) == 0
    page = (tmp_path / "out.html").read_text(encoding="utf-8")
    assert "<h1>Clean</h1>" in page
    assert "Body text" in page
    assert "\x00" not in page and "\x07" not in page and "\r" not in page
