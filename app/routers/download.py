# =============================================================================
# app/routers/download.py - Download Relay
# =============================================================================
# Fetches a file server-side and streams it back with
# `Content-Disposition: attachment`, so browsers download cross-origin
# storage URLs instead of opening them.
#
# Only hosts in DOWNLOAD_ALLOWED_HOSTS (default: the Supabase project host)
# are fetched.
#
# Usage:
#   GET /api/v1/download?url=https://.../transformed/abc.png
# =============================================================================

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.config import settings
from app.exceptions import (
    DownloadFetchError,
    DownloadHostNotAllowedError,
    MissingDownloadUrlError,
    TaskStudioException,
)
from lib.utils import filename_from_url

logger = logging.getLogger(__name__)

router = APIRouter()

# Headers that describe the upstream connection or encoding rather than
# the file itself. httpx decodes the body, so length/encoding no longer apply.
_DROPPED_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "keep-alive",
    "transfer-encoding",
    "content-disposition",
}


def download_allowed(url: httpx.URL, allowed_hosts: list[str] | None = None) -> bool:
    """Only http(s) URLs on an allow-listed host may be relayed."""
    allowed_hosts = settings.download_allowed_hosts_list if allowed_hosts is None else allowed_hosts
    if url.scheme not in ("http", "https"):
        return False
    return "*" in allowed_hosts or url.host.lower() in allowed_hosts


async def refuse_foreign_hosts(request: httpx.Request) -> None:
    """Request hook; also runs for every redirect hop."""
    if not download_allowed(request.url):
        raise DownloadHostNotAllowedError(request.url.host)


def get_http_client() -> httpx.AsyncClient:
    """Outbound HTTP client for one relayed download. The endpoint closes it."""
    return httpx.AsyncClient(
        timeout=settings.DOWNLOAD_RELAY_TIMEOUT_SECONDS,
        follow_redirects=True,
        event_hooks={"request": [refuse_foreign_hosts]},
    )


def relay_headers(upstream: httpx.Headers, url: str) -> dict[str, str]:
    """Upstream headers minus transport ones, plus the attachment disposition."""
    headers = {
        key: value
        for key, value in upstream.items()
        if key.lower() not in _DROPPED_HEADERS
    }
    headers["Content-Disposition"] = f'attachment; filename="{filename_from_url(url)}"'
    return headers


@router.get("/download")
async def download_file(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    url: Annotated[str | None, Query(description="File to download")] = None,
):
    """
    Relay a remote file as a download.

    Returns:
        The file body with the upstream status and headers

    Raises:
        400: `url` is missing, or its host is not on the allow-list
        <upstream status>: The file could not be fetched
        500: Any other relay failure
    """
    if not url:
        await client.aclose()
        raise MissingDownloadUrlError()

    try:
        request = client.build_request("GET", url)
        if not download_allowed(request.url):
            raise DownloadHostNotAllowedError(request.url.host)
        upstream = await client.send(request, stream=True)
    except DownloadHostNotAllowedError:
        await client.aclose()
        logger.warning(f"Download relay refused {url}")
        raise
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        await client.aclose()
        logger.error(f"Download relay error for {url}: {e}")
        raise TaskStudioException(
            message="Internal Server Error",
            code="DOWNLOAD_RELAY_ERROR",
            status_code=500,
        )

    async def close() -> None:
        await upstream.aclose()
        await client.aclose()

    if upstream.is_error:
        await close()
        logger.warning(f"Download relay: upstream returned {upstream.status_code} for {url}")
        raise DownloadFetchError(url, upstream.status_code)

    return StreamingResponse(
        upstream.aiter_bytes(),
        status_code=upstream.status_code,
        headers=relay_headers(upstream.headers, url),
        background=BackgroundTask(close),
    )
