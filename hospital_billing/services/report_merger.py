# FILE: hospital_billing/services/report_merger.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, List, Optional, Sequence

import requests
from pypdf import PdfReader, PdfWriter

from hospital_billing.core.config import settings
from hospital_billing.services.billing_errors import DocumentGenerationError
from hospital_billing.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], bytes]


def http_fetch(url: str, timeout: Optional[float] = None) -> bytes:
    resp = requests.get(url, timeout=timeout or settings.REPORT_FETCH_TIMEOUT)
    resp.raise_for_status()
    return resp.content


@dataclass
class MergeResult:
    data: bytes
    appended: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class ReportMerger:
    """
    Appends external PDFs after a primary PDF.

    Fetches run in a thread pool; pages are appended in the order the caller
    listed the locations. A location that cannot be resolved, fetched or
    parsed is logged and left out.
    """

    def __init__(self,
                 *,
                 storage: Optional[ObjectStorage] = None,
                 fetch: Optional[Fetcher] = None,
                 max_workers: Optional[int] = None):
        self.storage = storage
        self.fetch = fetch or http_fetch
        self.max_workers = int(max_workers or settings.REPORT_FETCH_WORKERS or 1)

    def _resolve(self, location: str) -> Optional[str]:
        if self.storage is not None:
            return self.storage.resolve(location)
        loc = (location or "").strip()
        return loc or None

    def _load(self, location: str) -> Optional[PdfReader]:
        try:
            url = self._resolve(location)
            if not url:
                logger.warning("Skipping report %r: no fetchable location", location)
                return None
            data = self.fetch(url)
            reader = PdfReader(BytesIO(data))
            if len(reader.pages) == 0:
                logger.warning("Skipping report %r: no pages", location)
                return None
            return reader
        except Exception as e:
            logger.warning("Skipping report %r: %s", location, e)
            return None

    def merge(self, primary: bytes, locations: Sequence[str]) -> MergeResult:
        try:
            primary_reader = PdfReader(BytesIO(primary))
            if len(primary_reader.pages) == 0:
                raise ValueError("primary document has no pages")
        except Exception as e:
            logger.exception("Primary document unreadable")
            raise DocumentGenerationError() from e

        locations = [loc for loc in (locations or [])]
        if not locations:
            return MergeResult(data=primary)

        workers = max(1, min(self.max_workers, len(locations)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order, whatever order fetches finish
            loaded = list(pool.map(self._load, locations))

        writer = PdfWriter()
        writer.append(primary_reader)

        result = MergeResult(data=b"")
        for loc, reader in zip(locations, loaded):
            if reader is None:
                result.skipped.append(loc)
                continue
            try:
                writer.append(reader)
                result.appended.append(loc)
            except Exception as e:
                logger.warning("Skipping report %r: merge failed: %s", loc, e)
                result.skipped.append(loc)

        out = BytesIO()
        writer.write(out)
        result.data = out.getvalue()

        logger.info("Merged %d of %d reports (%d skipped)", len(result.appended),
                    len(locations), len(result.skipped))
        return result
