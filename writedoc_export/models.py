import re
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from writedoc_export.colors import parse_color

CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1F]')


class ExportFormat(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    DOCX = "docx"
    HTML = "html"
    PRINT = "print"


class Theme(BaseModel):
    """Six-attribute colour/font record applied read-only during export."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    primary_color: str = Field("#2ECC71", alias="primaryColor")
    secondary_color: str = Field("#A855F7", alias="secondaryColor")
    accent_color: str = Field("#2ECC71", alias="accentColor")
    background_color: str = Field("#ffffff", alias="backgroundColor")
    text_color: str = Field("#1A1E23", alias="textColor")
    font_family: str = Field("Inter, sans-serif", alias="fontFamily")

    @field_validator(
        'primary_color', 'secondary_color', 'accent_color',
        'background_color', 'text_color',
    )
    @classmethod
    def validate_color(cls, v):
        """Colours must be CSS colours every renderer can parse"""
        v = CONTROL_CHARS.sub('', str(v)).strip()
        try:
            parse_color(v)
        except ValueError:
            raise ValueError(f"Unsupported colour value: {v!r}")
        return v

    @field_validator('font_family')
    @classmethod
    def sanitize_font_family(cls, v):
        # Inline style injection guard: a font family never contains these
        v = re.sub(r'[;{}<>"\x00-\x1F\x7F]', '', str(v)).strip()
        return v or "Arial, sans-serif"


DEFAULT_THEME = Theme()


class ExportRequest(BaseModel):
    content: str
    fields: Dict[str, str] = Field(default_factory=dict)
    theme: Theme = Field(default_factory=Theme)
    filename: Optional[str] = None

    @field_validator('content')
    @classmethod
    def sanitize_content(cls, v):
        """Sanitize control characters from the HTML content"""
        if not isinstance(v, str):
            raise ValueError('Content must be a string')

        # Keep \n, \r and \t, remove the other control characters
        sanitized = CONTROL_CHARS.sub('', v)

        # Normalize line endings
        sanitized = re.sub(r'\r\n|\r', '\n', sanitized)

        return sanitized

    @field_validator('fields')
    @classmethod
    def sanitize_fields(cls, v):
        return {
            CONTROL_CHARS.sub('', str(key)): CONTROL_CHARS.sub('', str(value))
            for key, value in (v or {}).items()
        }

    @field_validator('filename')
    @classmethod
    def sanitize_filename(cls, v):
        """Sanitize filename to remove invalid characters"""
        if v is None:
            return None

        sanitized = INVALID_FILENAME_CHARS.sub('', str(v)).strip()

        # An empty name falls back to the document title
        return sanitized or None


class FieldsRequest(BaseModel):
    content: str


def sanitize_filename_stem(value: Optional[str], default: str = "document") -> str:
    if not value:
        return default
    sanitized = INVALID_FILENAME_CHARS.sub('', str(value)).strip()
    return sanitized[:120] or default
