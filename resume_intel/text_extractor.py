"""
Text Extraction Module
======================

Turns an uploaded resume (raw bytes + filename) into plain text and tags it
with the extraction phase that succeeded: ``txt``, ``docx``, ``pdf-native`` or
``pdf-ocr``.

PDFs are read through pdfplumber first. When the text layer is missing or too
thin (scanned resumes), pages are rasterized and OCR'd through an
``OcrBackend`` inside a throwaway working directory.
"""

import io
import logging
import re
import tempfile
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

import pdfplumber
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from werkzeug.utils import secure_filename

import config
from resume_intel.errors import (
    ExternalToolError,
    InsufficientExtractedText,
    ToolTimeout,
    UnsupportedFormat,
)
from resume_intel.ocr import CliOcrBackend, OcrBackend

logger = logging.getLogger(__name__)

METHOD_TXT = "txt"
METHOD_DOCX = "docx"
METHOD_PDF_NATIVE = "pdf-native"
METHOD_PDF_OCR = "pdf-ocr"

_MIME_KINDS = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


@dataclass(frozen=True)
class ExtractedText:
    text: str
    method: str


def sanitize_filename(name: Optional[str]) -> str:
    """
    Make an uploaded filename safe to store.

    The extension is sanitized on its own and always kept, so a name whose
    stem is entirely non-ASCII (e.g. Urdu) still ends in ``.pdf`` / ``.docx``.

    Args:
        name: Client-supplied filename (may be None)

    Returns:
        str: ASCII-safe name capped at MAX_FILENAME_LENGTH, or "resume[.ext]"

    Example:
        >>> sanitize_filename("My Resume.pdf")
        'My_Resume.pdf'
        >>> sanitize_filename("سی وی.docx")
        'resume.docx'
    """
    raw = name or ""
    safe = secure_filename(raw)
    suffix = PurePosixPath(raw.replace("\\", "/")).suffix
    ext = secure_filename(suffix.lstrip(".")).lower()
    if not ext.isalnum() or len(ext) > 10:
        ext = ""

    if not ext:
        return (safe or "resume")[:config.MAX_FILENAME_LENGTH]

    if safe.lower().endswith(f".{ext}"):
        stem = safe[:-(len(ext) + 1)]
    elif safe.lower() == ext:
        stem = ""
    else:
        stem = safe
    stem = (stem or "resume")[:config.MAX_FILENAME_LENGTH - len(ext) - 1]
    return f"{stem}.{ext}"


def normalize_text(raw_text: str) -> str:
    """
    Clean and normalize extracted text.

    Strips control characters (keeping tabs and newlines), normalizes line
    endings and collapses runs of blank lines. Line structure is preserved
    because the parser sections resumes line by line.

    Args:
        raw_text: Text as produced by a decoder, docx, pdfplumber or OCR

    Returns:
        str: Cleaned text
    """
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _looks_like_docx(data: bytes) -> bool:
    if not data.startswith(b"PK\x03\x04"):
        return False
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            return "word/document.xml" in archive.namelist()
    except zipfile.BadZipFile:
        return False


def _looks_like_text(data: bytes) -> bool:
    try:
        decoded = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return not _CONTROL_CHARS_RE.search(decoded)


def detect_kind(filename: str, data: bytes, mimetype: Optional[str] = None) -> str:
    """
    Decide how to read a document.

    Order of evidence: file extension, declared mime type, then magic bytes
    (``%PDF`` header, a ZIP holding ``word/document.xml``, valid UTF-8).

    Args:
        filename: Original filename
        data: Document bytes
        mimetype: Declared mime type, if the client sent one

    Returns:
        str: "pdf", "docx" or "txt"

    Raises:
        UnsupportedFormat: No rule recognised the document
    """
    ext = Path(filename or "").suffix.lower().lstrip(".")
    if ext in config.ALLOWED_EXTENSIONS:
        return ext

    declared = (mimetype or "").split(";")[0].strip().lower()
    if declared in _MIME_KINDS:
        return _MIME_KINDS[declared]

    if data[:4] == b"%PDF":
        return "pdf"
    if _looks_like_docx(data):
        return "docx"
    if data and _looks_like_text(data):
        return "txt"

    raise UnsupportedFormat()


def _require_length(text: str, what: str) -> str:
    if len(text) < config.MIN_TEXT_LENGTH:
        logger.warning(f"{what} produced {len(text)} chars (< {config.MIN_TEXT_LENGTH})")
        raise InsufficientExtractedText()
    return text


def _extract_txt(data: bytes) -> ExtractedText:
    text = normalize_text(data.decode("utf-8-sig", errors="replace"))
    return ExtractedText(_require_length(text, "TXT"), METHOD_TXT)


def _extract_docx(data: bytes) -> ExtractedText:
    try:
        document = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        logger.warning(f"Unreadable DOCX: {e}")
        raise UnsupportedFormat("Could not read the DOCX file. Re-save it and upload again.")

    parts = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.append(" | ".join(cell.text.strip() for cell in row.cells))

    text = normalize_text("\n".join(parts))
    return ExtractedText(_require_length(text, "DOCX"), METHOD_DOCX)


def _read_pdf_text_layer(data: bytes) -> str:
    """Concatenate the native text layer page by page, capped at MAX_EXTRACTED_CHARS."""
    pages = []
    total = 0
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text() or ""
            if page_text:
                pages.append(page_text)
                total += len(page_text) + 1
            if total > config.MAX_EXTRACTED_CHARS:
                break
    return "\n".join(pages)[:config.MAX_EXTRACTED_CHARS]


def _ocr_pdf(data: bytes, backend: OcrBackend) -> str:
    """
    Rasterize and OCR a PDF inside a per-attempt temporary directory.

    The overall OCR_TIMEOUT_SECONDS budget covers rasterization and every
    page; each page gets an equal share of what remains, never more than
    the remaining budget.
    """
    budget = config.OCR_TIMEOUT_SECONDS
    deadline = time.monotonic() + budget

    with tempfile.TemporaryDirectory(prefix="ocr-") as workdir:
        images = backend.rasterize(data, Path(workdir), config.OCR_MAX_PAGES, budget)
        if not images:
            logger.warning("Rasterizer produced no page images")
            return ""

        images = images[:config.OCR_MAX_PAGES]
        per_page = budget / max(1, len(images))

        chunks = []
        total = 0
        for image in images:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ToolTimeout()
            out = backend.ocr(image, min(per_page, remaining))
            if out:
                chunks.append(out)
                total += len(out) + 1
            if total > config.MAX_EXTRACTED_CHARS:
                break

        logger.info(f"OCR processed {len(images)} page(s)")
        return normalize_text("\n".join(chunks))[:config.MAX_EXTRACTED_CHARS]


def _extract_pdf(data: bytes, backend: Optional[OcrBackend]) -> ExtractedText:
    native = ""
    try:
        native = normalize_text(_read_pdf_text_layer(data))
    except Exception as e:
        # pdfplumber raises a wide range of parser errors on damaged files
        logger.warning(f"Native PDF text extraction failed, trying OCR: {e}")

    if len(native) >= config.PDF_TEXT_MIN_LEN:
        return ExtractedText(native, METHOD_PDF_NATIVE)

    logger.info(f"Native PDF text too short ({len(native)} chars); falling back to OCR")
    ocr_text = _ocr_pdf(data, backend or CliOcrBackend())
    return ExtractedText(_require_length(ocr_text, "OCR"), METHOD_PDF_OCR)


def extract_text(
    filename: str,
    data: bytes,
    mimetype: Optional[str] = None,
    ocr_backend: Optional[OcrBackend] = None,
) -> ExtractedText:
    """
    Extract plain text from a resume document.

    Args:
        filename: Original filename (extension drives type detection)
        data: Raw document bytes
        mimetype: Declared mime type, used when the extension is missing
        ocr_backend: OCR capability for scanned PDFs; defaults to the CLI tools

    Returns:
        ExtractedText: {text, method}

    Raises:
        UnsupportedFormat: Not a PDF, DOCX or text document
        InsufficientExtractedText: Fewer than MIN_TEXT_LENGTH usable characters
        ToolUnavailable: OCR needed but the tools are missing or failing
        ToolTimeout: OCR exceeded its time budget

    Example:
        >>> result = extract_text("cv.txt", b"Jane Doe - Python engineer with 8 years of experience")
        >>> result.method
        'txt'
    """
    kind = detect_kind(filename, data, mimetype)
    logger.debug(f"Extracting {filename!r} as {kind} ({len(data)} bytes)")

    if kind == "txt":
        return _extract_txt(data)
    if kind == "docx":
        return _extract_docx(data)

    try:
        return _extract_pdf(data, ocr_backend)
    except ExternalToolError as e:
        logger.error(f"OCR fallback failed for {filename!r}: {type(e).__name__} ({e.tool or 'ocr'})")
        raise


__all__ = [
    "ExtractedText",
    "extract_text",
    "detect_kind",
    "normalize_text",
    "sanitize_filename",
    "METHOD_TXT",
    "METHOD_DOCX",
    "METHOD_PDF_NATIVE",
    "METHOD_PDF_OCR",
]
