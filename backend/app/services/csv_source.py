import csv
import io
import logging
from pathlib import Path
from typing import Iterator

import httpx

from ..config import SOURCE_TIMEOUT_S
from ..errors import SourceFetchError


logger = logging.getLogger(__name__)


def fetch_csv_text(source: str, *, timeout_s: float = SOURCE_TIMEOUT_S, transport: httpx.BaseTransport | None = None) -> str:
    """
    Read a CSV feed from an http(s) URL or a local path.
    """
    src = (source or "").strip()
    if not src:
        raise SourceFetchError("failed to fetch data: empty source")

    if not src.startswith(("http://", "https://")):
        try:
            return Path(src).read_text(encoding="utf-8-sig")
        except OSError as e:
            raise SourceFetchError(f"failed to fetch data from {src}: {e}") from e

    logger.info("fetching %s", src)
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=True, transport=transport) as client:
            r = client.get(src)
    except httpx.HTTPError as e:
        raise SourceFetchError(f"failed to fetch data from {src}: {type(e).__name__}: {e}") from e
    if r.status_code >= 400:
        raise SourceFetchError(f"failed to fetch data from {src}: HTTP {r.status_code}")
    return r.text


def iter_records(text: str) -> Iterator[dict[str, str]]:
    """Lazy row dicts keyed by header. Call again to restart from the top."""
    yield from csv.DictReader(io.StringIO(text or ""))
