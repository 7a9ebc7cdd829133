"""
Ingest & Ranking Pipeline
=========================

Request-scoped orchestration over the extractor, parser, scorer, ranker and
storage adapters. Each entry point is what one HTTP route runs:

  - ingest_upload: new file from a client → stored object + resume record
  - ingest_application: re-ingest the file an application already points at
  - backfill_job: ingest every application of a job
  - rank_job: rank a job's resume pool

Extraction, parsing and scoring all happen before anything is written, so a
failed ingest leaves no record and no stored object behind.
"""

import hashlib
import logging
import posixpath
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Tuple

import config
from resume_intel.errors import (
    ApplicationNotFound,
    FileTooLarge,
    InvalidRequest,
    JobNotFound,
    MissingResumeKey,
    ResumeIntelError,
)
from resume_intel.ocr import OcrBackend
from resume_intel.ranker import (
    JobPosting,
    PoolResume,
    RankOptions,
    get_ranking_summary,
    rank_resumes,
)
from resume_intel.resume_parser import ParsedResume, parse_resume
from resume_intel.scorer import ats_format_score
from resume_intel.storage import (
    ObjectStorage,
    RecordStore,
    download_with_fallback,
    split_storage_key,
)
from resume_intel.text_extractor import ExtractedText, extract_text, sanitize_filename

logger = logging.getLogger(__name__)


def _analyze(
    store: RecordStore,
    filename: str,
    data: bytes,
    mimetype: Optional[str],
    ocr_backend: Optional[OcrBackend],
) -> Tuple[ExtractedText, ParsedResume, float]:
    """Extract → parse → score. Writes nothing."""
    extracted = extract_text(filename, data, mimetype=mimetype, ocr_backend=ocr_backend)
    taxonomy = store.load_taxonomy()
    parsed = parse_resume(extracted.text, taxonomy)
    score = ats_format_score(parsed)
    return extracted, parsed, score


def _persist(
    store: RecordStore,
    application_id: str,
    storage_key: str,
    extracted: ExtractedText,
    parsed: ParsedResume,
    score: float,
) -> Dict:
    parsed_json = parsed.to_dict()
    record = store.insert_resume({
        "applicationId": application_id,
        "storageKey": storage_key,
        "rawText": extracted.text,
        "parsedJson": parsed_json,
        "formatScore": score,
        "extractionMethod": extracted.method,
    })
    if parsed_json["skills"]:
        store.put_resume_skills(record["resumeId"], parsed_json["skills"])
    return record


def upload_object_path(application_id: str, filename: str, data: bytes) -> str:
    """
    Canonical object path for a new upload: ``<app>/<epoch ms>-<sha256[:16]>-<name>``.

    Example:
        >>> upload_object_path("12", "Jane Doe CV.pdf", b"...")
        '12/1718000000000-3f2a9c0d1b7e4a55-Jane_Doe_CV.pdf'
    """
    digest = hashlib.sha256(data).hexdigest()[:16]
    safe = "_".join(sanitize_filename(filename).split())
    return f"{application_id}/{int(time.time() * 1000)}-{digest}-{safe}"


def ingest_upload(
    store: RecordStore,
    storage: ObjectStorage,
    application_id: Optional[str],
    filename: Optional[str],
    data: Optional[bytes],
    mimetype: Optional[str] = None,
    ocr_backend: Optional[OcrBackend] = None,
) -> Dict:
    """
    Ingest a freshly uploaded resume for an application.

    Args:
        store: Record store
        storage: Object storage for the raw file
        application_id: Owning application
        filename: Client filename (sanitized before use)
        data: File bytes
        mimetype: Declared content type
        ocr_backend: OCR capability for scanned PDFs

    Returns:
        dict: {resumeId, ats_format_score, storage: {bucket, path},
               extractionMethod, meta}

    Raises:
        InvalidRequest: Missing application id or empty file
        FileTooLarge: Over MAX_UPLOAD_SIZE_MB (checked before extraction)
        ApplicationNotFound: Unknown application
        ExtractionError / TaxonomyFetchFailure: Nothing is persisted
    """
    if not application_id:
        raise InvalidRequest("application_id is required")
    if not data:
        raise InvalidRequest("No file uploaded")
    if len(data) > config.MAX_UPLOAD_SIZE_BYTES:
        raise FileTooLarge(f"File too large. Max allowed is {config.MAX_UPLOAD_SIZE_MB} MB.")

    application_id = str(application_id)
    application = store.get_application(application_id)
    if application is None:
        raise ApplicationNotFound(f"Invalid application_id ({application_id})")

    safe_name = sanitize_filename(filename)
    extracted, parsed, score = _analyze(store, safe_name, data, mimetype, ocr_backend)

    path = upload_object_path(application_id, safe_name, data)
    storage_key = storage.upload(config.STORAGE_BUCKET, path, data)
    record = _persist(store, application_id, storage_key, extracted, parsed, score)
    store.update_application_resume(application_id, storage_key, safe_name)

    logger.info(
        f"Ingested upload for application {application_id}: resume {record['resumeId']}, "
        f"method={extracted.method}, score={score:.3f}"
    )
    return {
        "resumeId": record["resumeId"],
        "ats_format_score": score,
        "storage": {"bucket": config.STORAGE_BUCKET, "path": path},
        "extractionMethod": extracted.method,
        "meta": {
            "ext": posixpath.splitext(safe_name)[1].lstrip(".").lower(),
            "bytes": len(data),
            "storage_path": storage_key,
            "application_id": application_id,
            "candidate_id": application.get("candidateId"),
        },
    }


def ingest_application(
    store: RecordStore,
    storage: ObjectStorage,
    application_id: str,
    ocr_backend: Optional[OcrBackend] = None,
) -> Dict:
    """
    Re-ingest the resume an application already points at.

    The stored key is resolved through ``download_with_fallback`` so resumes
    saved under legacy layouts are still found.

    Raises:
        ApplicationNotFound: Unknown application
        MissingResumeKey: Application has no stored resume key
        StorageDownloadFailure: No variant of the key exists
    """
    application_id = str(application_id)
    application = store.get_application(application_id)
    if application is None:
        raise ApplicationNotFound()
    if not application.get("resumeKey"):
        raise MissingResumeKey()

    bucket, path = split_storage_key(application["resumeKey"])
    filename = sanitize_filename(application.get("resumeFilename") or posixpath.basename(path))
    data, found_bucket, found_path = download_with_fallback(storage, bucket, path, application_id, filename)

    extracted, parsed, score = _analyze(store, filename, data, None, ocr_backend)
    record = _persist(store, application_id, f"{found_bucket}/{found_path}", extracted, parsed, score)

    logger.info(
        f"Ingested stored resume for application {application_id}: resume {record['resumeId']}, "
        f"method={extracted.method}"
    )
    return {
        "applicationId": application_id,
        "resumeId": record["resumeId"],
        "ats_format_score": score,
        "storage": {"bucket": found_bucket, "path": found_path},
        "extractionMethod": extracted.method,
    }


def backfill_job(
    store: RecordStore,
    storage: ObjectStorage,
    job_id: str,
    ocr_backend: Optional[OcrBackend] = None,
) -> Dict:
    """
    Ingest the stored resume of every application for a job.

    Applications are processed on a thread pool; one failure does not stop
    the others.

    Returns:
        dict: {jobId, total, okCount, failedCount, failures: [{applicationId, error}]}
    """
    job_id = str(job_id)
    if store.get_job(job_id) is None:
        raise JobNotFound(f"Job not found ({job_id})")

    applications = store.list_applications(job_id)

    def _ingest_one(application: Dict) -> Optional[Dict]:
        try:
            ingest_application(store, storage, application["id"], ocr_backend=ocr_backend)
            return None
        except ResumeIntelError as e:
            logger.warning(f"Backfill failed for application {application['id']}: {e.message}")
            return {"applicationId": application["id"], "error": e.message}
        except Exception as e:
            logger.error(f"Backfill crashed for application {application['id']}: {e}", exc_info=True)
            return {"applicationId": application["id"], "error": str(e)}

    failures = []
    if applications:
        with ThreadPoolExecutor(max_workers=config.BACKFILL_WORKERS) as executor:
            failures = [f for f in executor.map(_ingest_one, applications) if f]

    summary = {
        "jobId": job_id,
        "total": len(applications),
        "okCount": len(applications) - len(failures),
        "failedCount": len(failures),
        "failures": failures,
    }
    logger.info(f"Backfill for job {job_id}: {summary['okCount']}/{summary['total']} ok")
    return summary


def rank_job(store: RecordStore, job_id: str, options: Optional[RankOptions] = None) -> Dict:
    """
    Rank the resumes submitted to a job.

    Returns:
        dict: {jobId, resumeId, deduped, ranked: [RankingResult dicts], summary}.
              ``ranked`` is empty when the job has no applications or resumes.

    Raises:
        JobNotFound: Unknown job
        TaxonomyFetchFailure: Taxonomy unreadable
    """
    options = options or RankOptions()
    job_id = str(job_id)

    job = store.get_job(job_id)
    if job is None:
        raise JobNotFound(f"Job not found ({job_id})")
    taxonomy = store.load_taxonomy()

    response = {
        "jobId": job_id,
        "resumeId": options.resume_id,
        "deduped": options.dedupe,
        "ranked": [],
        "summary": get_ranking_summary([]),
    }

    applications = store.list_applications(job_id, candidate_id=options.candidate_id)
    if not applications:
        logger.info(f"Job {job_id} has no applications to rank")
        return response

    candidate_by_app = {str(a["id"]): a.get("candidateId") for a in applications}
    rows = store.list_resumes(candidate_by_app.keys(), resume_id=options.resume_id)
    pool = [PoolResume.from_record(r, candidate_by_app.get(str(r.get("applicationId")))) for r in rows]

    results = rank_resumes(JobPosting.from_dict(job), taxonomy, pool, options)
    response["ranked"] = [r.to_dict() for r in results]
    response["summary"] = get_ranking_summary(results)
    return response


__all__ = [
    "ingest_upload",
    "ingest_application",
    "backfill_job",
    "rank_job",
    "upload_object_path",
]
