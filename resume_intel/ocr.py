"""
OCR Backends
============

Scanned resumes have no text layer, so the extractor falls back to
rasterizing each page and running OCR over the images. This module hides how
that happens behind a small capability interface:

    rasterize(pdf_bytes, workdir, max_pages, timeout) -> [image paths]
    ocr(image_path, timeout) -> text

``CliOcrBackend`` drives Poppler's ``pdftoppm`` and ``tesseract`` as child
processes. Every invocation carries a timeout; on expiry the whole process
group is killed and ``ToolTimeout`` is raised instead of hanging.
"""

import logging
import os
import re
import shutil
import signal
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

import config
from resume_intel.errors import ToolTimeout, ToolUnavailable

logger = logging.getLogger(__name__)

_PAGE_IMAGE_RE = re.compile(r"^page-(\d+)\.png$", re.IGNORECASE)


def _kill_process_group(proc: subprocess.Popen) -> None:
    """SIGKILL the child and everything it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()
    proc.wait()


def run_tool(args: Sequence[str], timeout: float, cwd: Optional[str] = None) -> str:
    """
    Run an external tool and return its stdout.

    The child gets its own session (process group) so a timeout or a
    cancelled caller can kill grandchildren too.

    Args:
        args: Command line, program first
        timeout: Seconds before the process group is killed
        cwd: Working directory for the child

    Returns:
        str: Decoded stdout

    Raises:
        ToolUnavailable: Program missing, or it exited non-zero
        ToolTimeout: Program did not finish within ``timeout``
    """
    tool = os.path.basename(args[0])
    if timeout <= 0:
        raise ToolTimeout(tool=tool)

    try:
        proc = subprocess.Popen(
            list(args),
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError:
        logger.error(f"External tool not found: {tool}")
        raise ToolUnavailable(tool=tool)

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        logger.warning(f"{tool} timed out after {timeout:.1f}s; process group killed")
        raise ToolTimeout(tool=tool)
    except BaseException:
        # Caller cancelled (KeyboardInterrupt, worker shutdown): never leave the child running
        _kill_process_group(proc)
        raise

    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()[:300]
        logger.error(f"{tool} exited with code {proc.returncode}: {detail}")
        raise ToolUnavailable(tool=tool)

    return stdout.decode("utf-8", errors="replace")


class OcrBackend(ABC):
    """Capability interface for turning PDF pages into text."""

    @abstractmethod
    def rasterize(self, pdf_bytes: bytes, workdir: Path, max_pages: int, timeout: float) -> List[Path]:
        """Render up to ``max_pages`` pages into images inside ``workdir``, in page order."""

    @abstractmethod
    def ocr(self, image_path: Path, timeout: float) -> str:
        """Recognise the text on one page image."""

    def is_available(self) -> bool:
        return True


class CliOcrBackend(OcrBackend):
    """OCR through the Poppler and Tesseract command line tools."""

    def __init__(
        self,
        rasterizer_bin: str = config.RASTERIZER_BIN,
        ocr_bin: str = config.OCR_BIN,
        language: str = config.OCR_LANGUAGE,
        psm: int = config.OCR_PSM,
    ):
        self.rasterizer_bin = rasterizer_bin
        self.ocr_bin = ocr_bin
        self.language = language
        self.psm = psm

    def is_available(self) -> bool:
        return bool(shutil.which(self.rasterizer_bin) and shutil.which(self.ocr_bin))

    def rasterize(self, pdf_bytes: bytes, workdir: Path, max_pages: int, timeout: float) -> List[Path]:
        pdf_path = workdir / "in.pdf"
        pdf_path.write_bytes(pdf_bytes)

        run_tool(
            [self.rasterizer_bin, "-png", "-f", "1", "-l", str(max_pages), str(pdf_path), "page"],
            timeout=timeout,
            cwd=str(workdir),
        )

        numbered = []
        for entry in workdir.iterdir():
            match = _PAGE_IMAGE_RE.match(entry.name)
            if match:
                numbered.append((int(match.group(1)), entry))
        numbered.sort()
        return [path for _, path in numbered[:max_pages]]

    def ocr(self, image_path: Path, timeout: float) -> str:
        return run_tool(
            [self.ocr_bin, str(image_path), "stdout", "-l", self.language, "--psm", str(self.psm)],
            timeout=timeout,
            cwd=str(image_path.parent),
        )


__all__ = ["OcrBackend", "CliOcrBackend", "run_tool"]
