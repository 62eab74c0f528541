from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import httpx
from bs4 import BeautifulSoup

from lexiconbuilder.errors import EmptyResponseError, FetchHTTPError
from lexiconbuilder.models import KIND_EXTENSIONS, FetchJob, FetchManifestRow, FetchMetadata
from lexiconbuilder.models.manifests import FetchRequestInfo
from lexiconbuilder.pipeline.hashing import sha256_bytes, sha256_text, short_hash
from lexiconbuilder.pipeline.io import write_json
from lexiconbuilder.pipeline.retry import with_retries

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "anglish-pipeline/0.1"

_COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
_WHITESPACE_RE = re.compile(r"\s+")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def canonicalize_html(html: str) -> str:
    """Reduce a page to the markup that matters for content addressing.

    Comments, ``<script>`` and ``<noscript>`` are dropped, only the inner
    ``<body>`` is kept when there is one, and whitespace runs collapse to a
    single space.
    """
    soup = BeautifulSoup(_COMMENT_RE.sub("", html), "html.parser")
    for tag in soup.find_all(["script", "noscript"]):
        tag.decompose()
    body = soup.body
    markup = body.decode_contents() if body is not None else str(soup)
    return _WHITESPACE_RE.sub(" ", markup).strip()


def request_id_for(job: FetchJob) -> str:
    return short_hash(job.method, job.url, job.body or "")


def content_id_for(job: FetchJob, content: bytes) -> str:
    if job.kind == "html":
        return sha256_text(canonicalize_html(content.decode("utf-8", errors="replace")))[:16]
    return sha256_bytes(content)[:16]


@dataclass(frozen=True)
class FetchOptions:
    raw_dir: Path
    force: bool = False
    timeout_s: float = 30.0
    retries: int = 4
    retry_base_delay_ms: int = 750
    user_agent: str = DEFAULT_USER_AGENT
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


@dataclass(frozen=True)
class _Downloaded:
    status: int
    content_type: str | None
    content_id: str
    size: int
    content: bytes | None = None
    temp_path: Path | None = None


async def fetch_job(client: httpx.AsyncClient, job: FetchJob, options: FetchOptions) -> FetchManifestRow:
    """Fetch one job and persist it content-addressed under ``options.raw_dir``.

    Never raises for per-job failures; those become ``ok=False`` rows.
    """
    request_id = request_id_for(job)
    headers = {"user-agent": options.user_agent, **job.headers}
    started = time.monotonic()
    temp_path = options.raw_dir / f"{job.source}.{request_id}.tmp"

    try:
        if job.stream:
            downloaded = await with_retries(
                lambda: _download_stream(client, job, headers, temp_path),
                retries=options.retries,
                base_delay_ms=options.retry_base_delay_ms,
                sleep=options.sleep,
                label=job.url,
            )
        else:
            timeout_s = job.timeout_ms / 1000.0 if job.timeout_ms else options.timeout_s
            downloaded = await with_retries(
                lambda: _download(client, job, headers, timeout_s),
                retries=options.retries,
                base_delay_ms=options.retry_base_delay_ms,
                sleep=options.sleep,
                label=job.url,
            )
        if downloaded.size == 0:
            raise EmptyResponseError(f"Empty response body from {job.url}")
    except Exception as e:
        temp_path.unlink(missing_ok=True)
        logger.warning("Fetch failed for %s: %s", job.url, e)
        return FetchManifestRow(
            id=request_id,
            request_id=request_id,
            source=job.source,
            kind=job.kind,
            url=job.url,
            ok=False,
            status=e.status if isinstance(e, FetchHTTPError) else None,
            error=str(e) or type(e).__name__,
            fetched_at=utc_now_iso(),
            stream=job.stream,
            job_meta=job.meta or None,
        )

    fetched_at = utc_now_iso()
    ext = KIND_EXTENSIONS[job.kind]
    raw_path = options.raw_dir / f"{job.source}.{downloaded.content_id}{ext}"
    meta_path = options.raw_dir / f"{job.source}.{downloaded.content_id}.meta.json"
    cache_hit = raw_path.exists() and not options.force

    if cache_hit:
        temp_path.unlink(missing_ok=True)
        logger.debug("Cache hit %s -> %s", job.url, raw_path.name)
    else:
        raw_path.parent.mkdir(parents=True, exist_ok=True)
        if downloaded.temp_path is not None:
            downloaded.temp_path.replace(raw_path)
        else:
            raw_path.write_bytes(downloaded.content or b"")
        meta = FetchMetadata(
            id=downloaded.content_id,
            request_id=request_id,
            source=job.source,
            kind=job.kind,
            url=job.url,
            status=downloaded.status,
            content_type=downloaded.content_type,
            bytes=downloaded.size,
            fetched_at=fetched_at,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            request=FetchRequestInfo(method=job.method, headers=headers),
        )
        write_json(meta_path, meta.to_json())

    return FetchManifestRow(
        id=downloaded.content_id,
        request_id=request_id,
        source=job.source,
        kind=job.kind,
        url=job.url,
        ok=True,
        status=downloaded.status,
        content_type=downloaded.content_type,
        bytes=downloaded.size,
        fetched_at=fetched_at,
        cache_hit=cache_hit,
        stream=job.stream,
        raw_path=str(raw_path),
        job_meta=job.meta or None,
    )


async def _download(
    client: httpx.AsyncClient, job: FetchJob, headers: dict[str, str], timeout_s: float
) -> _Downloaded:
    resp = await client.request(job.method, job.url, headers=headers, content=job.body, timeout=timeout_s)
    if not resp.is_success:
        raise FetchHTTPError(resp.status_code, resp.reason_phrase)
    content = resp.content
    return _Downloaded(
        status=resp.status_code,
        content_type=resp.headers.get("content-type"),
        content_id=content_id_for(job, content) if content else "",
        size=len(content),
        content=content,
    )


async def _download_stream(
    client: httpx.AsyncClient, job: FetchJob, headers: dict[str, str], temp_path: Path
) -> _Downloaded:
    # No timeout: dumps can take a long time to download.
    temp_path.parent.mkdir(parents=True, exist_ok=True)
    digest = hashlib.sha256()
    size = 0
    last_log = time.monotonic()
    async with client.stream(job.method, job.url, headers=headers, content=job.body, timeout=None) as resp:
        if not resp.is_success:
            raise FetchHTTPError(resp.status_code, resp.reason_phrase)
        total = resp.headers.get("content-length")
        with temp_path.open("wb") as f:
            async for chunk in resp.aiter_bytes():
                f.write(chunk)
                digest.update(chunk)
                size += len(chunk)
                now = time.monotonic()
                if now - last_log >= 1.0:
                    last_log = now
                    if total:
                        logger.info(f"{job.source}: {size / 1e6:.1f}/{int(total) / 1e6:.1f} MB")
                    else:
                        logger.info(f"{job.source}: {size / 1e6:.1f} MB")
        return _Downloaded(
            status=resp.status_code,
            content_type=resp.headers.get("content-type"),
            content_id=digest.hexdigest()[:16],
            size=size,
            temp_path=temp_path,
        )
