# src/landprep/core/fetch.py
"""
Download and unzip of remote source archives.

Each URL is fetched independently: a failed URL is retried with exponential
backoff, then recorded in the :class:`FetchReport` without stopping the batch.
"""

import time
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import unquote, urlparse

import requests
from loguru import logger

from landprep.core.exceptions import FormatError, RetrievalError

CHUNK_SIZE = 1024 * 1024

# retried with backoff; any other RequestException fails the URL at once
TRANSIENT_ERRORS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
)


@dataclass
class FetchReport:
    """Outcome of a batch download"""

    downloaded: List[Path] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def filename_from_url(url: str) -> str:
    """
    Destination filename: the URL's final path segment.

    Query strings and anything after a ``.zip`` suffix are dropped, so
    ``.../parchi.zip?x=1`` and ``.../parchi.zip/download`` both give
    ``parchi.zip``.
    """
    path = unquote(urlparse(url).path)
    lowered = path.lower()
    if ".zip" in lowered:
        path = path[: lowered.index(".zip") + len(".zip")]
    name = path.rstrip("/").rsplit("/", 1)[-1]
    if not name:
        raise ValueError(f"Cannot derive a filename from URL: {url}")
    return name


class Fetcher:
    """Downloads resources into a staging directory."""

    def __init__(
        self,
        dest_dir: Union[str, Path],
        timeout: int = 600,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        max_workers: int = 4,
        overwrite: bool = True,
        session: Optional[requests.Session] = None,
    ):
        self.dest_dir = Path(dest_dir)
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.max_workers = max_workers
        self.overwrite = overwrite
        self.session = session or requests.Session()

    def download(self, url: str) -> Path:
        """
        Download one URL, retrying transient failures.

        Timeouts, connection errors, streams cut off mid-transfer and 5xx
        responses are retried up to ``max_retries`` attempts in total; 4xx
        responses and malformed URLs fail immediately.

        Raises:
            RetrievalError: for any failure of this URL
        """
        try:
            target = self.dest_dir / filename_from_url(url)
        except ValueError as e:
            raise RetrievalError(url, str(e)) from e
        if target.exists() and not self.overwrite:
            logger.debug(f"Skipping existing {target.name}")
            return target

        last_error = "no attempt made"
        for attempt in range(1, self.max_retries + 1):
            try:
                self.dest_dir.mkdir(parents=True, exist_ok=True)
                self._stream_to(url, target)
                logger.info(f"Downloaded {target.name}")
                return target
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                last_error = f"HTTP {status}"
                if status is not None and status < 500:
                    break
            except TRANSIENT_ERRORS as e:
                last_error = f"{type(e).__name__}: {e}"
            except requests.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
                break
            except OSError as e:
                raise RetrievalError(url, f"cannot write {target}: {e}") from e

            if attempt < self.max_retries:
                delay = self.backoff_factor * (2 ** (attempt - 1))
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} for {url} failed "
                    f"({last_error}), retrying in {delay:.1f}s"
                )
                time.sleep(delay)

        raise RetrievalError(url, last_error)

    def _stream_to(self, url: str, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(partial, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
            partial.replace(target)
        finally:
            if partial.exists():
                partial.unlink()

    def download_all(self, urls: Iterable[str]) -> FetchReport:
        """Download every URL with a bounded thread pool."""
        urls = list(dict.fromkeys(urls))
        report = FetchReport()
        if not urls:
            return report

        logger.info(f"Downloading {len(urls)} resources to {self.dest_dir}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self.download, url): url for url in urls}
            for future in as_completed(futures):
                url = futures[future]
                try:
                    report.downloaded.append(future.result())
                except RetrievalError as e:
                    logger.warning(str(e))
                    report.failed[url] = e.reason

        logger.info(
            f"Download finished: {len(report.downloaded)} ok, {len(report.failed)} failed"
        )
        return report


def unzip_archive(zip_path: Union[str, Path], dest_dir: Union[str, Path]) -> Path:
    """
    Extract an archive into ``dest_dir/<archive stem>``.

    Raises:
        FormatError: if the file is not a readable zip archive
    """
    zip_path = Path(zip_path)
    target = Path(dest_dir) / zip_path.stem
    try:
        with zipfile.ZipFile(zip_path) as zf:
            target.mkdir(parents=True, exist_ok=True)
            zf.extractall(target)
    except zipfile.BadZipFile as e:
        raise FormatError(f"{zip_path} is not a valid zip archive: {e}") from e

    logger.debug(f"Extracted {zip_path.name} to {target}")
    return target


def unzip_all(raw_dir: Union[str, Path], dest_dir: Union[str, Path]) -> FetchReport:
    """Extract every ``*.zip`` under ``raw_dir``; bad archives are reported, not fatal."""
    raw_dir = Path(raw_dir)
    report = FetchReport()
    for zip_path in sorted(raw_dir.glob("*.zip")):
        try:
            report.downloaded.append(unzip_archive(zip_path, dest_dir))
        except FormatError as e:
            logger.warning(str(e))
            report.failed[str(zip_path)] = str(e)
    return report
