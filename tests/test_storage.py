"""Tests for object storage, legacy key fallback and the JSON record store."""

import json

import pytest

from resume_intel.errors import StorageDownloadFailure, TaxonomyFetchFailure
from resume_intel.storage import (
    ObjectNotFound,
    RecordStore,
    download_with_fallback,
    fallback_variants,
    split_storage_key,
)
from resume_intel.taxonomy import SEED_TAXONOMY


# ========== Keys & fallback ==========

def test_split_storage_key():
    assert split_storage_key("applications/7/cv.pdf") == ("applications", "7/cv.pdf")
    assert split_storage_key("resumes/7/cv.pdf") == ("resumes", "7/cv.pdf")
    assert split_storage_key("7/cv.pdf") == ("resumes", "7/cv.pdf")
    assert split_storage_key("cv.pdf") == ("resumes", "cv.pdf")


def test_fallback_variants_order():
    assert fallback_variants("logos", "old/cv.pdf", "7", None) == [
        ("logos", "old/cv.pdf"),
        ("resumes", "old/cv.pdf"),
        ("resumes", "7/cv.pdf"),
        ("applications", "7/cv.pdf"),
        ("resumes", "cv.pdf"),
        ("applications", "cv.pdf"),
    ]


def test_fallback_variants_are_deduplicated():
    variants = fallback_variants("resumes", "7/cv.pdf", "7", None)
    assert variants == [
        ("resumes", "7/cv.pdf"),
        ("applications", "7/cv.pdf"),
        ("resumes", "cv.pdf"),
        ("applications", "cv.pdf"),
    ]


def test_download_finds_legacy_location(storage):
    storage.upload("applications", "7/cv.pdf", b"legacy bytes")
    data, bucket, path = download_with_fallback(storage, "logos", "old/cv.pdf", "7")
    assert (data, bucket, path) == (b"legacy bytes", "applications", "7/cv.pdf")


def test_download_failure_lists_every_attempt(storage):
    with pytest.raises(StorageDownloadFailure) as excinfo:
        download_with_fallback(storage, "logos", "old/cv.pdf", "7")

    error = excinfo.value
    assert error.status_code == 404
    assert len(error.attempts) == 6
    assert error.to_dict()["tried"][0]["bucket"] == "logos"


# ========== Object storage ==========

def test_upload_never_overwrites(storage):
    key = storage.upload("resumes", "1/cv.txt", b"first")
    assert key == "resumes/1/cv.txt"
    with pytest.raises(FileExistsError):
        storage.upload("resumes", "1/cv.txt", b"second")
    assert storage.download("resumes", "1/cv.txt") == b"first"


def test_paths_cannot_escape_the_bucket(storage):
    with pytest.raises(ObjectNotFound):
        storage.download("resumes", "../../etc/passwd")
    with pytest.raises(ObjectNotFound):
        storage.download("../resumes", "cv.txt")
    assert not storage.exists("resumes", "missing.txt")


# ========== Record store ==========

def test_insert_resume_assigns_id_and_timestamp(store):
    record = store.insert_resume({"applicationId": "app-1", "rawText": "text"})
    assert record["resumeId"]
    assert record["createdAt"]
    assert store.get_resume(record["resumeId"]) == record


def test_list_resumes_newest_first_and_filtered(store):
    store.insert_resume({"resumeId": "a", "applicationId": "app-1", "createdAt": "2024-01-01T00:00:00+00:00"})
    store.insert_resume({"resumeId": "b", "applicationId": "app-1", "createdAt": "2024-05-01T00:00:00+00:00"})
    store.insert_resume({"resumeId": "c", "applicationId": "app-2", "createdAt": "2024-03-01T00:00:00+00:00"})

    assert [r["resumeId"] for r in store.list_resumes(["app-1", "app-2"])] == ["b", "c", "a"]
    assert [r["resumeId"] for r in store.list_resumes(["app-2"])] == ["c"]
    assert [r["resumeId"] for r in store.list_resumes(["app-1"], resume_id="a")] == ["a"]


def test_writes_leave_no_temp_files(store):
    store.insert_resume({"applicationId": "app-1"})
    store.put_job({"id": "job-1"})
    assert not list(store.root.rglob("*.tmp"))


def test_applications_by_job_and_candidate(store):
    store.put_application({"id": "a1", "jobId": 1, "candidateId": "c1"})
    store.put_application({"id": "a2", "jobId": "1", "candidateId": "c2"})
    store.put_application({"id": "a3", "jobId": "2", "candidateId": "c1"})

    assert [a["id"] for a in store.list_applications("1")] == ["a1", "a2"]
    assert [a["id"] for a in store.list_applications("1", candidate_id="c2")] == ["a2"]


def test_update_application_resume(store):
    store.put_application({"id": "a1", "jobId": "1"})
    store.update_application_resume("a1", "resumes/a1/cv.pdf", "cv.pdf")
    application = store.get_application("a1")
    assert application["resumeKey"] == "resumes/a1/cv.pdf"
    assert application["resumeFilename"] == "cv.pdf"


def test_unknown_or_unsafe_ids_return_none(store):
    assert store.get_job("nope") is None
    assert store.get_application("../taxonomy") is None


def test_resume_skills_rows(store):
    store.put_resume_skills("r1", [{"slug": "python", "confidence": 0.7}])
    assert store.get_resume_skills("r1") == [{"resumeId": "r1", "skillSlug": "python", "confidence": 0.7}]


# ========== Taxonomy ==========

def test_new_store_is_seeded(tmp_path):
    entries = RecordStore(str(tmp_path / "fresh")).load_taxonomy()
    assert len(entries) == len(SEED_TAXONOMY)


def test_load_taxonomy_merges_locale_aliases(store):
    excel = [e for e in store.load_taxonomy() if e.slug == "excel"][0]
    assert "ایکسل" in excel.aliases


def test_corrupt_taxonomy_raises(store):
    store.taxonomy_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(TaxonomyFetchFailure) as excinfo:
        store.load_taxonomy()
    assert excinfo.value.status_code == 502


def test_taxonomy_rows_without_slug_raise(store):
    store.taxonomy_path.write_text(json.dumps([{"aliases": ["x"]}]), encoding="utf-8")
    with pytest.raises(TaxonomyFetchFailure):
        store.load_taxonomy()


def test_taxonomy_with_negative_weight_raises(store):
    store.taxonomy_path.write_text(json.dumps([{"slug": "python", "weight": -1}]), encoding="utf-8")
    with pytest.raises(TaxonomyFetchFailure):
        store.load_taxonomy()
