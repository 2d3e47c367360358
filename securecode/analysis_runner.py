"""Core analysis workflow orchestration.

Submission (extract, scan, insert ``pending``) runs inside the caller's
request. Inference and aggregation run on a detached task whose only exits
are a ``completed`` or ``failed`` write on the job record.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .config import BATCH_SIZE, ELEVATED_ROLES, JOB_DIR_PREFIX
from .errors import (
    InferenceParseError,
    InvalidSubmission,
    JobAccessDenied,
    JobNotFound,
    NoCodeFilesFound,
    ScanError,
)
from .file_utils import (
    ArchiveInput,
    extract_archive_async,
    fetch_repository_archive_async,
    parse_repository_url,
    scan_directory_async,
    unwrap_single_directory,
)
from .gemini_service import InferenceClient, parse_failure_finding, parse_inference_payload
from .job_store import JobStore
from .models import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    AnalysisJob,
    SourceFile,
    archive_origin,
    repository_origin,
    utc_now,
)
from .reporting import aggregate_results, normalize_finding

logger = logging.getLogger("securecode")

FileFindings = Tuple[SourceFile, List[Dict[str, Any]]]
BatchHook = Callable[[int, int], None]


def partition(files: Sequence[SourceFile], size: int = BATCH_SIZE) -> List[List[SourceFile]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(files[i : i + size]) for i in range(0, len(files), size)]


async def analyze_file(client: InferenceClient, source: SourceFile) -> FileFindings:
    """One inference call; unparseable replies become a synthetic finding."""
    raw_text = await client.infer_vulnerabilities(source.content)
    try:
        findings = parse_inference_payload(raw_text)
    except InferenceParseError as exc:
        logger.warning("Unparseable model response for %s: %s", source.path, exc)
        findings = [parse_failure_finding(exc.raw_text)]
    return source, findings


async def analyze_files(
    files: Sequence[SourceFile],
    client: InferenceClient,
    *,
    batch_size: int = BATCH_SIZE,
    on_batch: Optional[BatchHook] = None,
) -> List[FileFindings]:
    """Run inference batch by batch, concurrently within each batch.

    Every call in a batch settles before the next batch starts. The first
    failure of a batch (in file order) is raised once the batch has settled.
    """
    batches = partition(files, batch_size)
    results: List[FileFindings] = []
    for index, batch in enumerate(batches, start=1):
        if on_batch:
            on_batch(index, len(batches))
        outcomes = await asyncio.gather(
            *(analyze_file(client, source) for source in batch),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
    return results


class AnalysisService:
    """Creates jobs, runs them in the background and serves status reads."""

    def __init__(
        self,
        store: JobStore,
        client: InferenceClient,
        *,
        batch_size: int = BATCH_SIZE,
        fetch_repository: Callable[[str], Any] = fetch_repository_archive_async,
    ) -> None:
        self.store = store
        self.client = client
        self.batch_size = batch_size
        self._fetch_repository = fetch_repository
        self._tasks: Set[asyncio.Task] = set()

    async def submit_archive(
        self, owner_id: str, archive: ArchiveInput, name: str = "upload.zip"
    ) -> Dict[str, str]:
        files = await self._ingest(archive)
        job = AnalysisJob(owner_id=owner_id, origin=archive_origin(name, files))
        return await self._enqueue(job, files)

    async def submit_repository(self, owner_id: str, url: str) -> Dict[str, str]:
        parse_repository_url(url)
        archive = await self._fetch_repository(url)
        files = await self._ingest(archive, unwrap=True)
        job = AnalysisJob(owner_id=owner_id, origin=repository_origin(url.strip()))
        return await self._enqueue(job, files)

    async def _ingest(self, archive: ArchiveInput, unwrap: bool = False) -> List[SourceFile]:
        tmp_root = tempfile.mkdtemp(prefix=JOB_DIR_PREFIX)
        scan_errors: List[ScanError] = []
        try:
            await extract_archive_async(archive, tmp_root)
            scan_root = unwrap_single_directory(tmp_root) if unwrap else tmp_root
            files = await scan_directory_async(scan_root, scan_errors)
        finally:
            shutil.rmtree(tmp_root, ignore_errors=True)
        if scan_errors:
            logger.warning("Skipped %d unreadable path(s) while scanning", len(scan_errors))
        if not files:
            raise NoCodeFilesFound()
        return files

    async def _enqueue(self, job: AnalysisJob, files: List[SourceFile]) -> Dict[str, str]:
        await self.store.insert(job)
        logger.info(
            "[%s] queued analysis owner=%s files=%d origin=%s",
            job.id,
            job.owner_id,
            len(files),
            job.origin.get("kind"),
        )
        task = asyncio.get_running_loop().create_task(self._run_analysis(job.id, files))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return {"id": job.id, "status": JOB_PENDING}

    async def _run_analysis(self, job_id: str, files: List[SourceFile]) -> None:
        try:
            per_file = await analyze_files(
                files,
                self.client,
                batch_size=self.batch_size,
                on_batch=lambda i, n: logger.debug("[%s] batch %d/%d", job_id, i, n),
            )
            result = aggregate_results(per_file)
        except asyncio.CancelledError:
            await self.fail_job(job_id, "Analysis cancelled during shutdown.")
            raise
        except Exception as exc:
            logger.exception("[%s] analysis job failed: %s", job_id, exc)
            await self.fail_job(job_id, str(exc) or exc.__class__.__name__)
            return
        await self.complete_job(job_id, result)

    async def complete_job(self, job_id: str, result: Dict[str, Any]) -> bool:
        written = await self._write_terminal(
            job_id, {"status": JOB_COMPLETED, "result": result}
        )
        if written:
            logger.info("[%s] analysis completed summary=%s", job_id, result.get("summary"))
        return written

    async def fail_job(self, job_id: str, message: str) -> bool:
        return await self._write_terminal(job_id, {"status": JOB_FAILED, "error": message})

    async def _write_terminal(self, job_id: str, patch: Dict[str, Any]) -> bool:
        """Write a terminal state once; later writes are ignored. Never raises."""
        try:
            job = await self.store.find_by_id(job_id)
            if job is None:
                logger.error("[%s] terminal write for unknown job", job_id)
                return False
            if job.is_terminal:
                logger.warning(
                    "[%s] ignoring %s write; job already %s",
                    job_id,
                    patch["status"],
                    job.status,
                )
                return False
            return await self.store.update_by_job_id(job_id, {**patch, "updated_at": utc_now()})
        except Exception:
            logger.exception("[%s] failed to record %s state", job_id, patch.get("status"))
            return False

    async def get_job(
        self, job_id: str, requester_id: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        job = await self.store.find_by_id(job_id)
        if job is None:
            raise JobNotFound()
        if job.owner_id != requester_id and (role or "") not in ELEVATED_ROLES:
            raise JobAccessDenied()
        return job.to_dict()

    async def list_jobs(self, owner_id: str) -> List[Dict[str, Any]]:
        jobs = await self.store.find_by_owner(owner_id, newest_first=True)
        history = []
        for job in jobs:
            entry = {
                "id": job.id,
                "origin": job.origin,
                "status": job.status,
                "created_at": job.created_at,
                "updated_at": job.updated_at,
            }
            if job.result is not None:
                entry["summary"] = job.result.get("summary")
            history.append(entry)
        return history

    async def analyze_snippet(self, code: str) -> Dict[str, Any]:
        if not code or not code.strip():
            raise InvalidSubmission("No code provided")
        _, findings = await analyze_file(self.client, SourceFile(path="snippet", content=code))
        return {"vulnerabilities": [normalize_finding(f) for f in findings]}

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_for_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["AnalysisService", "analyze_file", "analyze_files", "partition"]
