"""
Storage Adapters for Resume Intel
=================================

File-based persistence, so a single process can run the whole pipeline
without an external database or object store.

- ``ObjectStorage``: ``(bucket, path) → bytes`` blob storage, one directory per bucket.
- ``RecordStore``: JSON records for jobs, applications, resumes, resume skills
  and the skills taxonomy. Every write goes to a temp file first and is moved
  into place with ``os.replace``, so readers never see a half-written record.

Resume files uploaded by older clients were saved under several key layouts;
``download_with_fallback`` walks those layouts in a fixed order.
"""

import json
import logging
import os
import posixpath
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import config
from resume_intel.errors import StorageDownloadFailure, TaxonomyFetchFailure
from resume_intel.taxonomy import SEED_TAXONOMY, SkillTaxonomyEntry, normalize_taxonomy, validate_taxonomy

logger = logging.getLogger(__name__)


class ObjectNotFound(Exception):
    """Raised when a bucket/path pair holds no object."""

    def __init__(self, bucket: str, path: str):
        self.bucket = bucket
        self.path = path
        super().__init__(f"Object not found: {bucket}/{path}")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _atomic_write_bytes(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _atomic_write_json(target: Path, payload: Any) -> None:
    _atomic_write_bytes(target, json.dumps(payload, indent=2, default=str).encode("utf-8"))


# ============================================================================
# OBJECT STORAGE
# ============================================================================

class ObjectStorage:
    """Blob storage backed by a directory tree: ``<root>/<bucket>/<path>``."""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"ObjectStorage initialized at {self.root}")

    def _object_path(self, bucket: str, path: str) -> Path:
        clean = posixpath.normpath(str(path).replace("\\", "/")).lstrip("/")
        if not bucket or "/" in bucket or bucket in (".", "..") or clean in ("", ".") or clean.startswith(".."):
            raise ObjectNotFound(bucket, path)
        return self.root / bucket / clean

    def download(self, bucket: str, path: str) -> bytes:
        target = self._object_path(bucket, path)
        if not target.is_file():
            raise ObjectNotFound(bucket, path)
        return target.read_bytes()

    def upload(self, bucket: str, path: str, data: bytes) -> str:
        """
        Store an object. Existing objects are never overwritten.

        Returns:
            str: Bucket-prefixed storage key, e.g. "resumes/12/169..-ab12..-cv.pdf"
        """
        target = self._object_path(bucket, path)
        if self.exists(bucket, path):
            raise FileExistsError(f"Object already exists: {bucket}/{path}")
        _atomic_write_bytes(target, data)
        logger.debug(f"Stored object {bucket}/{path} ({len(data)} bytes)")
        return f"{bucket}/{path}"

    def exists(self, bucket: str, path: str) -> bool:
        try:
            return self._object_path(bucket, path).is_file()
        except ObjectNotFound:
            return False


def split_storage_key(key: str) -> Tuple[str, str]:
    """
    Split a stored resume key into ``(bucket, path)``.

    Keys without a known bucket prefix are assumed to live in the default
    resume bucket.

    Example:
        >>> split_storage_key("applications/7/cv.pdf")
        ('applications', '7/cv.pdf')
        >>> split_storage_key("7/cv.pdf")
        ('resumes', '7/cv.pdf')
    """
    key = str(key or "").strip().lstrip("/")
    head, sep, rest = key.partition("/")
    if sep and rest and head in config.KNOWN_BUCKETS:
        return head, rest
    return config.STORAGE_BUCKET, key


def fallback_variants(bucket: str, path: str, application_id: str, filename_guess: Optional[str]) -> List[Tuple[str, str]]:
    """Candidate ``(bucket, path)`` locations in lookup order, without duplicates."""
    base = posixpath.basename(path) or filename_guess or "resume.pdf"
    variants = [
        (bucket, path),
        ("resumes", path),
        ("resumes", f"{application_id}/{base}"),
        ("applications", f"{application_id}/{base}"),
        ("resumes", base),
        ("applications", base),
    ]
    return list(dict.fromkeys(variants))


def download_with_fallback(
    storage: ObjectStorage,
    bucket: str,
    path: str,
    application_id: str,
    filename_guess: Optional[str] = None,
) -> Tuple[bytes, str, str]:
    """
    Download a resume, trying legacy key layouts in order.

    Args:
        storage: Object storage
        bucket: Bucket from the stored key
        path: Path from the stored key
        application_id: Owning application (used in legacy layouts)
        filename_guess: Basename to use when ``path`` has none

    Returns:
        tuple: (data, bucket, path) of the first variant that exists

    Raises:
        StorageDownloadFailure: Every variant missed; ``attempts`` lists them
    """
    attempts = []
    for b, p in fallback_variants(bucket, path, application_id, filename_guess):
        try:
            data = storage.download(b, p)
        except ObjectNotFound as e:
            attempts.append({"bucket": b, "path": p, "message": str(e)})
            continue
        if attempts:
            logger.info(f"Resume for application {application_id} found at legacy location {b}/{p}")
        return data, b, p

    logger.warning(f"Resume download failed for application {application_id} after {len(attempts)} attempts")
    raise StorageDownloadFailure(attempts)


# ============================================================================
# RECORD STORE
# ============================================================================

class RecordStore:
    """
    JSON-file persistence for pipeline records.

    Layout under ``root``::

        jobs/<id>.json
        applications/<id>.json
        resumes/<id>.json
        resume_skills/<resume id>.json
        taxonomy.json
    """

    def __init__(self, root: str, seed_taxonomy: bool = True):
        self.root = Path(root)
        for kind in ("jobs", "applications", "resumes", "resume_skills"):
            (self.root / kind).mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        if seed_taxonomy and not self.taxonomy_path.exists():
            _atomic_write_json(self.taxonomy_path, SEED_TAXONOMY)
            logger.info(f"Seeded taxonomy with {len(SEED_TAXONOMY)} entries")
        logger.info(f"RecordStore initialized at {self.root}")

    @property
    def taxonomy_path(self) -> Path:
        return self.root / "taxonomy.json"

    def _record_path(self, kind: str, record_id: str) -> Path:
        safe = str(record_id)
        if not safe or "/" in safe or "\\" in safe or safe.startswith("."):
            raise ValueError(f"Invalid {kind} id: {record_id!r}")
        return self.root / kind / f"{safe}.json"

    def _read(self, kind: str, record_id: str) -> Optional[Dict]:
        try:
            filepath = self._record_path(kind, record_id)
        except ValueError:
            return None
        if not filepath.exists():
            return None
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, kind: str, record_id: str, data: Dict) -> None:
        _atomic_write_json(self._record_path(kind, record_id), data)

    def _scan(self, kind: str) -> Iterable[Dict]:
        for filepath in sorted((self.root / kind).glob("*.json")):
            with open(filepath, "r", encoding="utf-8") as f:
                yield json.load(f)

    # ---------- jobs ----------

    def put_job(self, job: Dict) -> Dict:
        job = dict(job)
        job["id"] = str(job.get("id") or uuid.uuid4().hex)
        self._write("jobs", job["id"], job)
        return job

    def get_job(self, job_id: str) -> Optional[Dict]:
        return self._read("jobs", job_id)

    # ---------- applications ----------

    def put_application(self, application: Dict) -> Dict:
        application = dict(application)
        application["id"] = str(application.get("id") or uuid.uuid4().hex)
        if application.get("jobId") is not None:
            application["jobId"] = str(application["jobId"])
        self._write("applications", application["id"], application)
        return application

    def get_application(self, application_id: str) -> Optional[Dict]:
        return self._read("applications", application_id)

    def list_applications(self, job_id: str, candidate_id: Optional[str] = None) -> List[Dict]:
        apps = [a for a in self._scan("applications") if str(a.get("jobId")) == str(job_id)]
        if candidate_id:
            apps = [a for a in apps if str(a.get("candidateId")) == str(candidate_id)]
        return apps

    def update_application_resume(self, application_id: str, resume_key: str, filename: str) -> None:
        """Point an application at its newest stored resume."""
        with self._lock:
            application = self.get_application(application_id)
            if application is None:
                logger.warning(f"Cannot sync resume key: application {application_id} vanished")
                return
            application["resumeKey"] = resume_key
            application["resumeFilename"] = filename
            self._write("applications", application_id, application)

    # ---------- resumes ----------

    def insert_resume(self, record: Dict) -> Dict:
        """
        Persist a new resume record.

        Assigns ``resumeId`` and ``createdAt`` when absent. The record becomes
        visible only once fully written.
        """
        record = dict(record)
        record["resumeId"] = str(record.get("resumeId") or uuid.uuid4().hex)
        record.setdefault("createdAt", utc_now_iso())
        self._write("resumes", record["resumeId"], record)
        logger.debug(f"Inserted resume {record['resumeId']} for application {record.get('applicationId')}")
        return record

    def get_resume(self, resume_id: str) -> Optional[Dict]:
        return self._read("resumes", resume_id)

    def list_resumes(self, application_ids: Iterable[str], resume_id: Optional[str] = None) -> List[Dict]:
        """Resume records for the given applications, newest first."""
        wanted = {str(a) for a in application_ids}
        rows = [r for r in self._scan("resumes") if str(r.get("applicationId")) in wanted]
        if resume_id:
            rows = [r for r in rows if str(r.get("resumeId")) == str(resume_id)]
        rows.sort(key=lambda r: str(r.get("createdAt") or ""), reverse=True)
        return rows

    def put_resume_skills(self, resume_id: str, skills: List[Dict]) -> None:
        rows = [
            {"resumeId": resume_id, "skillSlug": s["slug"], "confidence": s.get("confidence")}
            for s in skills
        ]
        self._write("resume_skills", resume_id, {"resumeId": resume_id, "skills": rows})

    def get_resume_skills(self, resume_id: str) -> List[Dict]:
        data = self._read("resume_skills", resume_id) or {}
        return data.get("skills", [])

    # ---------- taxonomy ----------

    def put_taxonomy(self, rows: List[Dict]) -> None:
        _atomic_write_json(self.taxonomy_path, [dict(r) for r in rows])

    def load_taxonomy(self) -> List[SkillTaxonomyEntry]:
        """
        Read and normalize the taxonomy. Re-read on every call.

        Raises:
            TaxonomyFetchFailure: File missing, unreadable, malformed or inconsistent
        """
        try:
            with open(self.taxonomy_path, "r", encoding="utf-8") as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise ValueError("taxonomy must be a JSON list")
            entries = normalize_taxonomy(rows)
            if not validate_taxonomy(entries):
                raise ValueError("taxonomy has negative weights or entries without surface forms")
            return entries
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load taxonomy from {self.taxonomy_path}: {e}")
            raise TaxonomyFetchFailure()


# Global instances
_record_store = None
_object_storage = None


def get_record_store() -> RecordStore:
    """Get or create the global record store."""
    global _record_store
    if _record_store is None:
        _record_store = RecordStore(os.path.join(config.DATA_DIR, "records"))
    return _record_store


def get_object_storage() -> ObjectStorage:
    """Get or create the global object storage."""
    global _object_storage
    if _object_storage is None:
        _object_storage = ObjectStorage(os.path.join(config.DATA_DIR, "objects"))
    return _object_storage


__all__ = [
    "ObjectStorage",
    "ObjectNotFound",
    "RecordStore",
    "split_storage_key",
    "fallback_variants",
    "download_with_fallback",
    "get_record_store",
    "get_object_storage",
    "utc_now_iso",
]
