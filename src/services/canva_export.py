"""
src/services/canva_export.py — Canva design export with bounded polling.

Submits an export job, then sleeps/polls at a fixed interval until the job
reaches a terminal state or the attempt budget runs out (15 × 2s ≈ 30s).
Runs inside the calling request; nothing is detached.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from src.integrations.canva_client import CanvaAPIError, CanvaClient

logger = logging.getLogger(__name__)


class ExportError(Exception):
    status_code = 500


class ExportStartError(ExportError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class ExportFailedError(ExportError):
    def __init__(self, message: str = "Canva export job failed"):
        super().__init__(message)


class ExportTimeoutError(ExportError):
    status_code = 504


def extract_asset_url(job: Any) -> str | None:
    """First asset URL from a finished job.

    Checked in order: job.result.urls[0], then job.urls[0].
    """
    if not isinstance(job, dict):
        return None
    result = job.get("result")
    candidates = [
        result.get("urls") if isinstance(result, dict) else None,
        job.get("urls"),
    ]
    for urls in candidates:
        if isinstance(urls, list) and urls and isinstance(urls[0], str):
            return urls[0]
    return None


class CanvaExportPoller:
    def __init__(
        self,
        client: CanvaClient,
        interval: float = 2.0,
        max_attempts: int = 15,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def export_design(self, access_token: str, design_id: str, file_type: str = "png") -> str:
        """Export design_id and return the downloadable asset URL.

        Raises:
            ExportStartError: the job could not be created.
            ExportFailedError: Canva reported the job as failed.
            ExportTimeoutError: no terminal state within max_attempts polls.
        """
        try:
            created = await self.client.create_export(access_token, design_id, file_type)
        except CanvaAPIError as exc:
            raise ExportStartError("Failed to start Canva export", exc.status_code) from exc

        job_id = (created.get("job") or {}).get("id") if isinstance(created, dict) else None
        if not job_id:
            raise ExportStartError("No export job ID returned from Canva")

        logger.info("Canva export %s started for design %s", job_id, design_id)

        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.interval)

            resp = await self.client.get_export(access_token, job_id)
            if resp.is_error:
                logger.debug("Export %s poll %d: HTTP %d, retrying", job_id, attempt, resp.status_code)
                continue

            try:
                body = resp.json()
            except ValueError:
                logger.debug("Export %s poll %d: unreadable body, retrying", job_id, attempt)
                continue

            job = (body.get("job") if isinstance(body, dict) else None) or {}
            status = job.get("status")

            if status == "success":
                url = extract_asset_url(job)
                if url:
                    logger.info("Canva export %s finished after %d polls", job_id, attempt)
                    return url
                logger.warning("Export %s reported success without a URL", job_id)

            if status == "failed":
                logger.error("Canva export %s failed: %s", job_id, job.get("error"))
                raise ExportFailedError()

        total = round(self.interval * self.max_attempts)
        raise ExportTimeoutError(f"Export timed out after {total} seconds")
