"""Tests for the HTTP API."""
import pytest
from httpx import AsyncClient

from writedoc_export import api, pipeline
from writedoc_export.config import settings
from writedoc_export.strategies import Strategy

from tests.conftest import pdf_text


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["message"] == "WriteDoc Export API"


@pytest.mark.asyncio
async def test_health_lists_the_chains(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["strategies"]["pdf"] == ["text", "canvas", "plain-text"]
    assert data["strategies"]["docx"] == ["structured", "plain-text"]


@pytest.mark.asyncio
async def test_fields_endpoint(client: AsyncClient, invoice_html):
    resp = await client.post("/fields", json={"content": invoice_html})
    assert resp.status_code == 200
    assert resp.json() == {"fields": ["Client Name", "Invoice Date", "Amount"]}


@pytest.mark.asyncio
async def test_pdf_export(client: AsyncClient, invoice_html, invoice_fields):
    resp = await client.post("/export/pdf", json={"content": invoice_html, "fields": invoice_fields})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["x-export-strategy"] == "text"
    assert resp.headers["content-disposition"] == 'attachment; filename="Invoice for Acme Corp.pdf"'
    assert int(resp.headers["content-length"]) == len(resp.content)
    assert "Acme Corp" in pdf_text(resp.content)


@pytest.mark.asyncio
async def test_docx_export_with_filename_and_camel_case_theme(client: AsyncClient, invoice_html):
    resp = await client.post("/export/docx", json={
        "content": invoice_html,
        "theme": {"primaryColor": "#112233", "secondaryColor": "#445566"},
        "filename": "report",
    })
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document")
    assert resp.headers["content-disposition"] == 'attachment; filename="report.docx"'
    assert resp.content.startswith(b"PK")


@pytest.mark.asyncio
async def test_image_export(client: AsyncClient, invoice_html):
    resp = await client.post("/export/image", json={"content": invoice_html})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_print_export_is_inline(client: AsyncClient, invoice_html):
    resp = await client.post("/export/print", json={"content": invoice_html})
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].startswith("inline;")
    assert "window.print()" in resp.text


@pytest.mark.asyncio
async def test_non_ascii_filename(client: AsyncClient):
    resp = await client.post("/export/html", json={"content": "<p>x</p>", "filename": "Résumé"})
    assert resp.status_code == 200
    assert "filename*=UTF-8''R%C3%A9sum%C3%A9.html" in resp.headers["content-disposition"]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {},
    {"content": ""},
    {"content": "<p>x</p>", "theme": {"primaryColor": "not-a-colour"}},
])
async def test_invalid_requests_are_400(client: AsyncClient, payload):
    resp = await client.post("/export/pdf", json=payload)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_unknown_format_is_400(client: AsyncClient):
    resp = await client.post("/export/gif", json={"content": "<p>x</p>"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_oversized_content_is_413(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "MAX_CONTENT_SIZE", 10)
    resp = await client.post("/export/pdf", json={"content": "<p>far more than ten bytes</p>"})
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_exhausted_chain_is_503(client: AsyncClient, monkeypatch):
    async def broken(subtree, theme):
        raise RuntimeError("boom")

    monkeypatch.setattr(pipeline, "PDF_STRATEGIES", (Strategy("text", broken),))
    resp = await client.post("/export/pdf", json={"content": "<p>x</p>"})
    assert resp.status_code == 503
    assert resp.json()["detail"] == api.RETRY_MESSAGE


@pytest.mark.asyncio
async def test_unexpected_errors_hide_details(client: AsyncClient, monkeypatch):
    async def broken(*args, **kwargs):
        raise KeyError("internal detail")

    monkeypatch.setattr(api, "export_document", broken)
    resp = await client.post("/export/pdf", json={"content": "<p>x</p>"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == api.RETRY_MESSAGE
    assert "internal detail" not in resp.text
