"""
Shared fixtures for the export pipeline tests.

The invoice document exercises every block kind: a title with a placeholder,
a paragraph, a table with a header row and a highlighted section.
"""
import io
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pypdf import PdfReader

from writedoc_export.api import app

INVOICE_HTML = """```html
<h1>Invoice for [Client Name]</h1>
<p>Billed to [Client Name] on [Invoice Date].</p>
<table>
  <tr><th>Item</th><th>Amount</th></tr>
  <tr><td>Design work</td><td>[Amount]</td></tr>
  <tr><td>Hosting</td><td>$20</td></tr>
</table>
<div style="background-color: #e3f2fd"><p>Payment is due within 30 days.</p></div>
```"""

INVOICE_FIELDS = {"Client Name": "Acme Corp", "Invoice Date": "2024-05-01", "Amount": "$500"}


def pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def pdf_pages(data: bytes) -> int:
    return len(PdfReader(io.BytesIO(data)).pages)


def long_document(paragraphs: int) -> str:
    body = "".join(
        f"<p>Paragraph {i}: the quick brown fox jumps over the lazy dog near the river bank.</p>"
        for i in range(paragraphs)
    )
    return f"<h1>Long report</h1>{body}"


@pytest.fixture
def invoice_html() -> str:
    return INVOICE_HTML


@pytest.fixture
def invoice_fields() -> dict:
    return dict(INVOICE_FIELDS)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
