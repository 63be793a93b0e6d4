"""
FastAPI application exposing the export pipeline.

POST /export/{format} takes the rendered HTML content, the field values and
the theme, and answers with the exported file. The X-Export-Strategy header
names the strategy that produced it; the Content-Type is authoritative, since
a fallback may return a different type than the one requested.
"""
import io
import logging
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from writedoc_export import __version__
from writedoc_export.config import settings
from writedoc_export.models import ExportFormat, ExportRequest, FieldsRequest
from writedoc_export.normalizer import extract_fields, strip_code_fences
from writedoc_export.pipeline import export_document, filename_stem, strategy_chains
from writedoc_export.strategies import ExportError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

RETRY_MESSAGE = "The document could not be exported. Please try again."

app = FastAPI(
    title="WriteDoc Export API",
    version=__version__,
    description="Export generated HTML documents to PDF, PNG, DOCX, HTML and print pages."
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": errors})


def content_disposition(disposition: str, filename: str) -> str:
    """Header value with an ASCII fallback and the RFC 5987 UTF-8 name"""
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "document"
    if fallback == filename:
        return f'{disposition}; filename="{filename}"'
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@app.post("/export/{fmt}")
async def export(fmt: ExportFormat, req: ExportRequest):
    """Run the export pipeline for one format"""
    if not req.content.strip():
        raise HTTPException(status_code=400, detail="content field is required")
    if len(req.content.encode("utf-8")) > settings.MAX_CONTENT_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"Content exceeds the {settings.MAX_CONTENT_SIZE} byte limit",
        )

    try:
        blob = await export_document(fmt, req.content, req.fields, req.theme)
        stem = filename_stem(req.content, req.fields, req.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ExportError as e:
        logger.error("Export chain exhausted: %s", e)
        raise HTTPException(status_code=503, detail=RETRY_MESSAGE)
    except Exception:
        logger.exception("Unexpected error while exporting %s", fmt.value)
        raise HTTPException(status_code=500, detail=RETRY_MESSAGE)

    disposition = "inline" if fmt is ExportFormat.PRINT else "attachment"
    return StreamingResponse(
        io.BytesIO(blob.data),
        media_type=blob.media_type,
        headers={
            "Content-Disposition": content_disposition(disposition, blob.filename(stem)),
            "Content-Length": str(len(blob.data)),
            "X-Export-Strategy": blob.strategy,
        }
    )


@app.post("/fields")
def fields(req: FieldsRequest):
    """Placeholder names a client has to collect values for"""
    return {"fields": extract_fields(strip_code_fences(req.content))}


@app.get("/")
def root():
    return {
        "message": "WriteDoc Export API",
        "version": __version__,
        "endpoints": {
            "POST /export/{format}": "Export content as pdf, image, docx, html or print",
            "POST /fields": "List the placeholder fields of a document",
            "GET /health": "Health check"
        },
        "request_format": {
            "content": "string (required, HTML or Markdown)",
            "fields": "object (optional, placeholder name to value)",
            "theme": "object (optional, primaryColor, secondaryColor, accentColor, "
                     "backgroundColor, textColor, fontFamily)",
            "filename": "string (optional, defaults to the document title)"
        }
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "strategies": {
            fmt.value: [strategy.name for strategy in strategies]
            for fmt, (_, strategies) in strategy_chains().items()
        },
        "page_size": settings.PAGE_SIZE,
    }
