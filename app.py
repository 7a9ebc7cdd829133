"""
Resume Intel - Main Flask Application
=====================================

JSON API over the resume ingest and ranking pipeline.

Routes:
  GET  /health                                - OCR tool availability
  POST /api/ats/resumes/upload                - Upload + ingest a resume (multipart)
  POST /api/ats/applications/<id>/ingest      - Ingest an application's stored resume
  POST /api/ats/jobs/<id>/backfill            - Ingest every application of a job
  GET  /api/ats/jobs/<id>/rank                - Rank a job's resumes (JSON or CSV)

Features:
  - Rate limiting: uploads per IP per minute
  - Pipeline errors mapped to HTTP statuses with actionable messages
  - Security headers on every response
"""

import logging
import time
from collections import defaultdict
from datetime import datetime
from io import BytesIO

from flask import Flask, jsonify, redirect, request, send_file

import config
from resume_intel import exporter, pipeline, verify_ocr_setup
from resume_intel.errors import InvalidRequest, ResumeIntelError
from resume_intel.ranker import RankOptions
from resume_intel.storage import get_object_storage, get_record_store


# Configure logging
log_level = logging.WARNING if config.is_production() else logging.INFO
logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.secret_key = config.SECRET_KEY
# Slack over the file limit for multipart overhead; the pipeline enforces the exact limit
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_SIZE_BYTES + 1024 * 1024

# File-based persistence (swapped for temporary stores in tests)
record_store = get_record_store()
object_storage = get_object_storage()
ocr_backend = None  # None → Poppler/Tesseract CLI backend

# Rate limiting: track uploads per IP
# Format: {ip_address: [timestamp1, timestamp2, ...]}
rate_limit_store = defaultdict(list)


# ========== Startup Verification ==========

if not verify_ocr_setup():
    logger.error(
        "OCR tools missing: scanned PDFs will be rejected with 503.\n"
        "Fix: apt-get install poppler-utils tesseract-ocr"
    )


# ========== Helper Functions ==========

def check_rate_limit(
    ip_address: str,
    max_requests: int = config.RATE_LIMIT_REQUESTS,
    window_seconds: int = config.RATE_LIMIT_WINDOW,
) -> bool:
    """
    Check if an IP address has exceeded the rate limit.

    Args:
        ip_address: Client IP address
        max_requests: Maximum requests allowed in time window
        window_seconds: Time window in seconds

    Returns:
        bool: True if request allowed, False if rate limit exceeded
    """
    now = time.time()
    cutoff = now - window_seconds

    # Remove old timestamps outside the window
    rate_limit_store[ip_address] = [
        ts for ts in rate_limit_store[ip_address] if ts > cutoff
    ]

    if len(rate_limit_store[ip_address]) >= max_requests:
        logger.warning(f"Rate limit exceeded for IP {ip_address}")
        return False

    rate_limit_store[ip_address].append(now)
    return True


def _flag(name: str, value: str) -> bool:
    return request.args.get(name, '').strip().lower() == value


def generate_csv_filename(job_id: str) -> str:
    """Timestamped download name, e.g. ranking_42_20240101_120000.csv"""
    return f"ranking_{job_id}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"


# ========== Request Hooks ==========

@app.before_request
def enforce_https():
    if config.is_production() and request.headers.get('X-Forwarded-Proto') == 'http':
        return redirect(request.url.replace('http://', 'https://'), code=301)


@app.after_request
def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    return response


# ========== Routes ==========

@app.route('/health')
def health():
    ocr_ready = verify_ocr_setup()
    return jsonify({
        "status": "ok" if ocr_ready else "degraded",
        "app": config.APP_NAME,
        "env": config.APP_ENV,
        "ocr_ready": ocr_ready,
        "ocr_tools": [config.RASTERIZER_BIN, config.OCR_BIN],
    }), 200 if ocr_ready else 503


@app.route('/api/ats/resumes/upload', methods=['POST'])
def upload_resume():
    """
    Upload and ingest a resume.

    Expected multipart form:
      - application_id: Owning application
      - file: PDF, DOCX or TXT resume

    Returns:
      JSON {ok, resumeId, ats_format_score, storage, extractionMethod, meta}

    Rate Limited: RATE_LIMIT_REQUESTS uploads per RATE_LIMIT_WINDOW per IP
    """
    client_ip = request.remote_addr
    if not check_rate_limit(client_ip):
        return jsonify({
            'ok': False,
            'error': f'Rate limit exceeded. Maximum {config.RATE_LIMIT_REQUESTS} uploads per minute. '
                     'Please wait and try again.'
        }), 429

    upload = request.files.get('file')
    if upload is None:
        raise InvalidRequest("No file uploaded")

    result = pipeline.ingest_upload(
        record_store,
        object_storage,
        application_id=request.form.get('application_id'),
        filename=upload.filename,
        data=upload.read(),
        mimetype=upload.mimetype,
        ocr_backend=ocr_backend,
    )
    return jsonify({'ok': True, **result})


@app.route('/api/ats/applications/<application_id>/ingest', methods=['POST'])
def ingest_application(application_id):
    """Ingest the resume an application already points at."""
    result = pipeline.ingest_application(
        record_store, object_storage, application_id, ocr_backend=ocr_backend
    )
    return jsonify({'ok': True, **result})


@app.route('/api/ats/jobs/<job_id>/backfill', methods=['POST'])
def backfill_job(job_id):
    """Ingest every application of a job; failures are counted, not raised."""
    summary = pipeline.backfill_job(record_store, object_storage, job_id, ocr_backend=ocr_backend)
    return jsonify({'ok': True, **summary})


@app.route('/api/ats/jobs/<job_id>/rank')
def rank_job(job_id):
    """
    Rank a job's resumes.

    Query params:
      - resumeId: Rank only this resume (disables dedup)
      - candidateId: Only this candidate's resumes
      - all=true or dedupe=false: Keep every resume instead of latest per candidate
      - format=csv: Download as CSV instead of JSON
    """
    options = RankOptions(
        resume_id=request.args.get('resumeId') or None,
        candidate_id=request.args.get('candidateId') or None,
        include_all=_flag('all', 'true') or _flag('dedupe', 'false'),
    )
    result = pipeline.rank_job(record_store, job_id, options)

    if _flag('format', 'csv'):
        csv_bytes = BytesIO(exporter.get_csv_as_string(result['ranked']).encode('utf-8'))
        return send_file(
            csv_bytes,
            mimetype='text/csv',
            as_attachment=True,
            download_name=generate_csv_filename(job_id)
        )

    return jsonify({'ok': True, **result})


# ========== Error Handlers ==========

@app.errorhandler(ResumeIntelError)
def pipeline_error(e):
    """Map pipeline errors to their HTTP status with an actionable message."""
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__} on {request.path}: {e.message}")
    else:
        logger.warning(f"{type(e).__name__} on {request.path}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(404)
def not_found(e):
    """Handle 404 Not Found errors."""
    return jsonify({'ok': False, 'error': 'Not found. The requested resource does not exist.'}), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'ok': False, 'error': 'Method not allowed.'}), 405


@app.errorhandler(413)
def request_entity_too_large(e):
    """Handle 413 Payload Too Large errors."""
    return jsonify({
        'ok': False,
        'error': f'File too large. Maximum upload size is {config.MAX_UPLOAD_SIZE_MB}MB.'
    }), 413


@app.errorhandler(500)
def server_error(e):
    """Handle 500 Internal Server Error."""
    logger.error(f"Internal server error: {str(e)}", exc_info=True)
    return jsonify({'ok': False, 'error': 'An error occurred. Please try again.'}), 500


# ========== Application Startup ==========

# Development only; use gunicorn in production

if __name__ == "__main__":
    logger.info("Starting Resume Intel")
    logger.info(f"Data directory: {config.DATA_DIR}")
    logger.info(f"Max upload size: {config.MAX_UPLOAD_SIZE_MB}MB")

    app.run(debug=not config.is_production(), port=config.PORT, host=config.HOST)
