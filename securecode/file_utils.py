"""Archive extraction, repository download and source file discovery."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import shutil
import stat
import zipfile
import zlib
from typing import BinaryIO, List, Optional, Union

import requests

from .config import (
    CODE_EXTENSIONS,
    GITHUB_ARCHIVE_URL,
    MAX_ARCHIVE_ENTRIES,
    MAX_EXTRACTED_BYTES,
    MAX_UPLOAD_BYTES,
    REPO_FETCH_TIMEOUT,
)
from .errors import ExtractionError, InvalidRepositoryUrl, RepositoryFetchError, ScanError
from .models import SourceFile
from .text_utils import format_bytes

logger = logging.getLogger("securecode")

ArchiveInput = Union[bytes, bytearray, str, "os.PathLike[str]", BinaryIO]

GITHUB_URL_RE = re.compile(
    r"^https?://(?:www\.)?github\.com/"
    r"(?P<owner>[A-Za-z0-9][A-Za-z0-9-]*)/"
    r"(?P<repo>[A-Za-z0-9._-]+?)"
    r"(?:\.git)?"
    r"(?:/tree/(?P<ref>[^?#\s]+?))?"
    r"/?$"
)


def is_code_file(filename: str) -> bool:
    return filename.lower().endswith(CODE_EXTENSIONS)


def _open_archive(archive: ArchiveInput) -> zipfile.ZipFile:
    source = archive
    if isinstance(archive, (bytes, bytearray)):
        source = io.BytesIO(bytes(archive))
    try:
        return zipfile.ZipFile(source)
    except zipfile.BadZipFile as exc:
        raise ExtractionError("Invalid or unsupported archive; a ZIP file is required.") from exc
    except (OSError, zipfile.LargeZipFile) as exc:
        raise ExtractionError(f"Unable to open archive: {exc}") from exc


def _is_symlink(member: zipfile.ZipInfo) -> bool:
    mode = member.external_attr >> 16
    return stat.S_ISLNK(mode)


def _resolve_member(base: str, member: zipfile.ZipInfo) -> str:
    name = member.filename.replace("\\", "/")
    if name.startswith("/") or re.match(r"^[A-Za-z]:", name):
        raise ExtractionError(f"Blocked absolute path in archive: {member.filename}")
    target = os.path.realpath(os.path.join(base, name))
    if os.path.commonpath([base, target]) != base:
        raise ExtractionError(f"Blocked path traversal attempt: {member.filename}")
    return target


def _plan_extraction(zf: zipfile.ZipFile, base: str) -> List[tuple]:
    members = zf.infolist()
    if len(members) > MAX_ARCHIVE_ENTRIES:
        raise ExtractionError(
            f"Archive has too many entries ({len(members)} > {MAX_ARCHIVE_ENTRIES})."
        )
    total = 0
    plan = []
    for member in members:
        if member.flag_bits & 0x1:
            raise ExtractionError(f"Password-protected archives are not supported: {member.filename}")
        if _is_symlink(member):
            raise ExtractionError(f"Symbolic links are not allowed in archives: {member.filename}")
        target = _resolve_member(base, member)
        if target == base:
            continue
        total += member.file_size
        if total > MAX_EXTRACTED_BYTES:
            raise ExtractionError(
                f"Archive expands beyond {format_bytes(MAX_EXTRACTED_BYTES)}."
            )
        plan.append((member, target))
    return plan


def extract_archive(archive: ArchiveInput, dest_dir: str) -> List[str]:
    """Expand a ZIP archive into ``dest_dir``, preserving relative paths.

    Every entry is validated before anything is written: encrypted entries,
    symlinks and paths that resolve outside ``dest_dir`` reject the whole
    archive with ``ExtractionError``.
    """
    os.makedirs(dest_dir, exist_ok=True)
    base = os.path.realpath(dest_dir)
    extracted_paths: List[str] = []
    with _open_archive(archive) as zf:
        plan = _plan_extraction(zf, base)
        try:
            for member, target in plan:
                if member.is_dir():
                    os.makedirs(target, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with zf.open(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                extracted_paths.append(target)
        except (
            zipfile.BadZipFile,
            zlib.error,
            NotImplementedError,
            RuntimeError,
            EOFError,
            OSError,
            ValueError,
        ) as exc:
            raise ExtractionError(f"Corrupt archive: {exc}") from exc
    return extracted_paths


async def extract_archive_async(archive: ArchiveInput, dest_dir: str) -> List[str]:
    return await asyncio.to_thread(extract_archive, archive, dest_dir)


def parse_repository_url(url: str) -> dict:
    match = GITHUB_URL_RE.match((url or "").strip())
    if not match or match.group("repo").strip(".") == "":
        raise InvalidRepositoryUrl(
            "Repository URL must look like https://github.com/<owner>/<repo>."
        )
    return {
        "owner": match.group("owner"),
        "repo": match.group("repo"),
        "ref": match.group("ref") or "HEAD",
    }


def fetch_repository_archive(
    url: str,
    *,
    timeout: int = REPO_FETCH_TIMEOUT,
    max_bytes: int = MAX_UPLOAD_BYTES,
    session: Optional[requests.Session] = None,
) -> bytes:
    """Download a GitHub repository snapshot as ZIP bytes."""
    parts = parse_repository_url(url)
    archive_url = GITHUB_ARCHIVE_URL.format(**parts)
    http = session or requests
    logger.info("Downloading repository archive %s", archive_url)
    try:
        with http.get(archive_url, timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            buffer = io.BytesIO()
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                buffer.write(chunk)
                if buffer.tell() > max_bytes:
                    raise RepositoryFetchError(
                        f"Repository archive exceeds {format_bytes(max_bytes)}."
                    )
    except requests.exceptions.HTTPError as exc:
        status = getattr(exc.response, "status_code", "?")
        raise RepositoryFetchError(
            f"Repository download failed with HTTP {status}: {url}"
        ) from exc
    except requests.exceptions.RequestException as exc:
        raise RepositoryFetchError(f"Repository download failed: {exc}") from exc
    return buffer.getvalue()


async def fetch_repository_archive_async(url: str) -> bytes:
    return await asyncio.to_thread(fetch_repository_archive, url)


def unwrap_single_directory(root_dir: str) -> str:
    """GitHub snapshots nest everything under ``<repo>-<ref>/``; scan from there."""
    try:
        entries = os.listdir(root_dir)
    except OSError:
        return root_dir
    if len(entries) == 1:
        only = os.path.join(root_dir, entries[0])
        if os.path.isdir(only) and not os.path.islink(only):
            return only
    return root_dir


def _read_text(path: str) -> str:
    with open(path, "rb") as f:
        raw = f.read()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _walk(
    directory: str,
    rel_dir: str,
    files: List[SourceFile],
    errors: List[ScanError],
) -> None:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        if not rel_dir:
            raise ScanError(f"Unable to read directory {directory}: {exc}", path=directory) from exc
        logger.warning("Skipping unreadable directory %s: %s", rel_dir, exc)
        errors.append(ScanError(str(exc), path=rel_dir))
        return

    for entry in entries:
        rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
        try:
            if entry.is_dir(follow_symlinks=False):
                _walk(entry.path, rel_path, files, errors)
                continue
            if not entry.is_file(follow_symlinks=False) or not is_code_file(entry.name):
                continue
            content = _read_text(entry.path)
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", rel_path, exc)
            errors.append(ScanError(str(exc), path=rel_path))
            continue
        files.append(SourceFile(path=rel_path, content=content))


def scan_directory(root_dir: str, errors: Optional[List[ScanError]] = None) -> List[SourceFile]:
    """Collect every recognised source file below ``root_dir``.

    Paths are relative to ``root_dir`` with ``/`` separators, in sorted walk
    order. Unreadable files are logged and skipped (and appended to
    ``errors`` when given); an unreadable root raises ``ScanError``.
    """
    sink: List[ScanError] = errors if errors is not None else []
    files: List[SourceFile] = []
    if not os.path.isdir(root_dir):
        raise ScanError(f"Not a directory: {root_dir}", path=root_dir)
    _walk(root_dir, "", files, sink)
    return files


async def scan_directory_async(
    root_dir: str, errors: Optional[List[ScanError]] = None
) -> List[SourceFile]:
    return await asyncio.to_thread(scan_directory, root_dir, errors)


__all__ = [
    "extract_archive",
    "extract_archive_async",
    "fetch_repository_archive",
    "fetch_repository_archive_async",
    "is_code_file",
    "parse_repository_url",
    "scan_directory",
    "scan_directory_async",
    "unwrap_single_directory",
]
