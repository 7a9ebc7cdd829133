"""Shared fixtures: a small taxonomy, fake OCR backends and temporary stores."""

import os
import tempfile
from pathlib import Path

# config reads DATA_DIR at import time; keep the global stores out of the repo
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="resume-intel-test-"))

import pytest

from resume_intel.errors import ToolUnavailable
from resume_intel.ocr import OcrBackend
from resume_intel.storage import ObjectStorage, RecordStore


SAMPLE_TAXONOMY = [
    {"slug": "python", "aliases": ["python3"], "kind": "skill"},
    {"slug": "docker", "aliases": [], "kind": "tool"},
    {"slug": "cpp", "aliases": ["c++"], "kind": "skill"},
    {"slug": "csharp", "aliases": ["c#"], "kind": "skill"},
    {"slug": "golang", "aliases": ["go"], "kind": "skill"},
    {"slug": "react", "aliases": ["react.js"], "kind": "skill"},
    {"slug": "kubernetes", "aliases": ["k8s"], "kind": "platform"},
    {"slug": "aws-certified", "aliases": ["aws certified"], "kind": "cert", "weight": 1.5},
    {"slug": "leadership", "aliases": ["team lead"], "kind": "soft", "weight": 0.5},
    {"slug": "excel", "aliases": [], "locale_aliases": ["ایکسل"], "kind": "tool"},
]

SAMPLE_RESUME = (
    "Jane Doe\n"
    "jane.doe@example.com | +1 (415) 555-0100 | https://linkedin.com/in/janedoe | https://janedoe.github.io\n"
    "Summary\n"
    "Backend engineer focused on reliable services.\n"
    "Experience\n"
    "Senior Engineer, Acme Corp  Jan 2019 - Mar 2023\n"
    "- Led a team of 5 engineers\n"
    "- Improved deployment time by 40%\n"
    "- Reduced cloud spend by $12,000 per year\n"
    "Education\n"
    "BS Computer Science, 2014 - 2018, GPA: 3.6\n"
    "Skills: Python, Docker, C++\n"
)


class FakeOcrBackend(OcrBackend):
    """Writes each page's text into a fake image file and 'recognises' it back."""

    def __init__(self, pages):
        self.pages = list(pages)
        self.workdirs = []
        self.ocr_calls = 0

    def rasterize(self, pdf_bytes, workdir, max_pages, timeout):
        self.workdirs.append(Path(workdir))
        paths = []
        for number, text in enumerate(self.pages[:max_pages], start=1):
            image = Path(workdir) / f"page-{number}.png"
            image.write_text(text, encoding="utf-8")
            paths.append(image)
        return paths

    def ocr(self, image_path, timeout):
        self.ocr_calls += 1
        return Path(image_path).read_text(encoding="utf-8")


class UnavailableOcrBackend(OcrBackend):
    """Behaves like a server without Poppler/Tesseract installed."""

    def __init__(self):
        self.workdirs = []

    def is_available(self):
        return False

    def rasterize(self, pdf_bytes, workdir, max_pages, timeout):
        self.workdirs.append(Path(workdir))
        raise ToolUnavailable(tool="pdftoppm")

    def ocr(self, image_path, timeout):
        raise ToolUnavailable(tool="tesseract")


@pytest.fixture
def sample_taxonomy():
    return [dict(row) for row in SAMPLE_TAXONOMY]


@pytest.fixture
def sample_resume():
    return SAMPLE_RESUME


@pytest.fixture
def store(tmp_path, sample_taxonomy):
    record_store = RecordStore(str(tmp_path / "records"))
    record_store.put_taxonomy(sample_taxonomy)
    return record_store


@pytest.fixture
def storage(tmp_path):
    return ObjectStorage(str(tmp_path / "objects"))


@pytest.fixture
def seeded_store(store):
    """Store with one job and two applications from different candidates."""
    store.put_job({
        "id": "job-1",
        "title": "Backend Engineer",
        "descriptionText": "Backend engineer building Python services shipped with Docker on Kubernetes.",
        "requiredSkillSlugs": ["python", "docker"],
    })
    store.put_application({"id": "app-1", "jobId": "job-1", "candidateId": "cand-1"})
    store.put_application({"id": "app-2", "jobId": "job-1", "candidateId": "cand-2"})
    return store


@pytest.fixture
def client(monkeypatch, seeded_store, storage):
    import app as app_module

    monkeypatch.setattr(app_module, "record_store", seeded_store)
    monkeypatch.setattr(app_module, "object_storage", storage)
    monkeypatch.setattr(app_module, "ocr_backend", UnavailableOcrBackend())
    app_module.rate_limit_store.clear()
    app_module.app.config["TESTING"] = True

    with app_module.app.test_client() as test_client:
        yield test_client
