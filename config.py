"""
Configuration module for Resume Intel
=====================================

Loads environment variables and defines application constants.
Extraction thresholds, OCR limits and the scoring weight tables all live here
so they can be tuned without touching the pipeline code.
"""

import json
import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# =========== App Settings ===========
APP_NAME = "Resume Intel"
APP_ENV = os.getenv("APP_ENV", "development")  # "development" or "production"
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-in-production")
DEBUG = APP_ENV == "development"

# =========== Text Extraction ===========
MIN_TEXT_LENGTH = 40                # Generic floor for any extracted document
PDF_TEXT_MIN_LEN = 400              # Native PDF text accepted without OCR above this
MAX_EXTRACTED_CHARS = 2_000_000     # Hard cap on concatenated page text

# =========== OCR Fallback ===========
RASTERIZER_BIN = os.getenv("RASTERIZER_BIN", "pdftoppm")   # Poppler
OCR_BIN = os.getenv("OCR_BIN", "tesseract")
OCR_LANGUAGE = os.getenv("OCR_LANGUAGE", "eng")
OCR_PSM = 6                         # tesseract page segmentation: single uniform block
OCR_MAX_PAGES = 18
OCR_TIMEOUT_SECONDS = float(os.getenv("OCR_TIMEOUT_SECONDS", 120))

# =========== File Handling ===========
MAX_UPLOAD_SIZE_MB = 15
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
ALLOWED_EXTENSIONS = {"pdf", "docx", "txt"}
MAX_FILENAME_LENGTH = 120

# =========== Storage ===========
DATA_DIR = os.getenv("DATA_DIR", "data/")
STORAGE_BUCKET = "resumes"          # canonical bucket for new uploads
KNOWN_BUCKETS = ("resumes", "applications", "logos")

# =========== Ranking ===========
RANK_LIMIT = 50
TOP_JOB_TERMS = 12
RANK_WORKERS = 4                    # Per-resume scoring has no cross-resume dependency
BACKFILL_WORKERS = 4

# =========== Rate Limiting ===========
RATE_LIMIT_REQUESTS = 10    # Uploads per IP per window
RATE_LIMIT_WINDOW = 60      # Seconds

# =========== Deployment ===========
PORT = int(os.getenv("PORT", 5000))
HOST = os.getenv("HOST", "0.0.0.0")


def _load_weights(env_var: str, defaults: dict) -> dict:
    """
    Merge a JSON weight override from the environment over the defaults.

    Unknown keys are ignored so a typo cannot introduce a silent new term.

    Args:
        env_var: Name of the environment variable holding a JSON object
        defaults: Default weight table

    Returns:
        dict: Effective weight table
    """
    raw = os.getenv(env_var)
    if not raw:
        return dict(defaults)

    try:
        overrides = json.loads(raw)
    except ValueError:
        logger.error(f"Ignoring {env_var}: not valid JSON")
        return dict(defaults)

    if not isinstance(overrides, dict):
        logger.error(f"Ignoring {env_var}: expected a JSON object")
        return dict(defaults)

    weights = dict(defaults)
    for key, value in overrides.items():
        if key in weights:
            weights[key] = float(value)
        else:
            logger.warning(f"Ignoring unknown weight '{key}' in {env_var}")
    return weights


# =========== Scoring Weights ===========
# Hand-tuned product constants, not derived invariants.
FORMAT_WEIGHTS = _load_weights("ATS_FORMAT_WEIGHTS", {
    "contact": 0.18,
    "headers": 0.18,
    "bullets": 0.18,
    "stuffing": 0.36,      # structural-integrity term, primary anti-gaming defense
    "timeline": 0.10,
})

RANKING_WEIGHTS = _load_weights("ATS_RANKING_WEIGHTS", {
    "skill_coverage": 0.35,
    "text_similarity": 0.20,
    "format": 0.20,
    "impact": 0.15,
    "cert": 0.05,
    "tool": 0.05,
    "soft": 0.00,          # tracked in the breakdown, currently zero-weighted
})


def is_production() -> bool:
    """
    Check whether the app is running in production mode.

    Returns:
        bool: True if APP_ENV is "production", False otherwise
    """
    return APP_ENV == "production"


# =========== Example .env file content ===========
# Create a .env file in the project root with this content:
#
# # Resume Intel Configuration
# APP_ENV=production
# SECRET_KEY=your-random-secret-key-here
# DATA_DIR=/var/lib/resume-intel
# OCR_TIMEOUT_SECONDS=120
# ATS_RANKING_WEIGHTS={"skill_coverage": 0.40, "text_similarity": 0.15}
