import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from writedoc_export.config import settings
from writedoc_export.html_export import PopupBlockedError, open_print_window
from writedoc_export.models import ExportFormat, ExportRequest, Theme
from writedoc_export.pipeline import export_document, filename_stem
from writedoc_export.strategies import ExportError

FORMATS = [fmt.value for fmt in ExportFormat]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="writedoc-export",
        description="Export an HTML (or Markdown) document to PDF, PNG, DOCX, HTML or a print page.",
    )
    parser.add_argument(
        "format",
        choices=FORMATS + ["serve"],
        help="Output format, or 'serve' to run the HTTP API.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        help="Path to the document, or '-' to read it from standard input.",
    )
    parser.add_argument(
        "--fields",
        help="Placeholder values as a JSON object, or a path to a JSON file.",
    )
    parser.add_argument(
        "--theme",
        help="Theme as a JSON object (primaryColor, secondaryColor, ...), or a path to a JSON file.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output path; the extension follows the type actually produced "
             "(default: <document title>.<ext> in the current directory).",
    )
    parser.add_argument(
        "--filename",
        help="File name stem used when --output is not given.",
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help=f"Bind address for 'serve' (default: {settings.HOST}).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Port for 'serve' (default: {settings.PORT}).",
    )
    return parser.parse_args(argv)


def _load_json(value: Optional[str]) -> Dict:
    if not value:
        return {}
    text = value if value.lstrip().startswith("{") else Path(value).read_text(encoding="utf-8")
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("writedoc_export.api:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.format == "serve":
        return serve(args.host, args.port)

    if not args.input:
        raise SystemExit("INPUT is required for exports.")
    try:
        fields = {str(key): str(value) for key, value in _load_json(args.fields).items()}
        theme = Theme.model_validate(_load_json(args.theme))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid --fields/--theme: {exc}")
    try:
        content = _read_input(args.input)
    except (OSError, UnicodeDecodeError) as exc:
        raise SystemExit(f"Cannot read {args.input}: {exc}")

    # Same sanitising as the HTTP API
    req = ExportRequest(content=content, fields=fields, theme=theme, filename=args.filename)

    try:
        blob = asyncio.run(export_document(args.format, req.content, req.fields, req.theme))
    except ValueError as exc:
        raise SystemExit(str(exc))
    except ExportError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return 1

    if args.format == ExportFormat.PRINT.value:
        try:
            open_print_window(blob.data.decode("utf-8"))
        except PopupBlockedError as exc:
            print(exc, file=sys.stderr)
            return 2
        print("Opened the document for printing")
        return 0

    if args.output:
        target = args.output.with_suffix(f".{blob.extension}")
    else:
        target = Path(blob.filename(filename_stem(req.content, req.fields, req.filename)))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(blob.data)
    print(f"Wrote {target} ({blob.strategy}, {len(blob.data)} bytes)")
    return 0
