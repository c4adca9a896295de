"""PDF text extraction."""

import io
from typing import Protocol

from pydantic import BaseModel, Field
from pypdf import PdfReader


class ExtractedText(BaseModel):
    """Merged text of every page of a PDF."""

    text: str
    page_count: int = Field(ge=0)


class TextExtractor(Protocol):
    """Protocol for PDF text extractors."""

    def extract(self, data: bytes) -> ExtractedText:
        """Extract the merged text and page count from PDF bytes."""
        ...


class PdfTextExtractor:
    """pypdf-based extractor; pages are joined with a newline."""

    def extract(self, data: bytes) -> ExtractedText:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        return ExtractedText(text="\n".join(pages), page_count=len(pages))
