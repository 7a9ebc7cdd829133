"""
Resume Intel - Core Package
===========================

This package contains the resume ingest and ranking pipeline:
- text_extractor: Extract text from PDF / DOCX / TXT resumes, with OCR fallback
- ocr: Rasterizer + OCR capability (Poppler / Tesseract CLI backend)
- taxonomy: Skill taxonomy entries and alias matching patterns
- resume_parser: Turn resume text into an explainable feature snapshot
- scorer: ATS format score
- ranker: Rank a job's resume pool with a composite, explainable score
- storage: File-based object storage and JSON record store
- pipeline: Upload / ingest / backfill / rank orchestration
- exporter: Export rankings to CSV
"""

from . import errors
from . import taxonomy
from . import ocr
from . import text_extractor
from . import resume_parser
from . import scorer
from . import ranker
from . import storage
from . import pipeline
from . import exporter

__all__ = [
    'errors',
    'taxonomy',
    'ocr',
    'text_extractor',
    'resume_parser',
    'scorer',
    'ranker',
    'storage',
    'pipeline',
    'exporter',
]


def verify_ocr_setup() -> bool:
    """
    Check that the OCR command line tools are on PATH.
    Called once on app startup and by the health route.
    Returns True if ready, False if scanned PDFs cannot be processed.
    """
    if ocr.CliOcrBackend().is_available():
        return True

    import logging
    logging.getLogger(__name__).error(
        "OCR tools not found (pdftoppm, tesseract). Scanned PDFs will be rejected. "
        "Install poppler-utils and tesseract-ocr."
    )
    return False
