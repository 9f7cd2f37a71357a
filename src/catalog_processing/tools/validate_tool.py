"""Validate tool - probe URLs for reachability, content type and asset type."""

import ipaddress
import logging
import re
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Optional
from urllib.parse import unquote, urlparse

import httpx

from ..cancellation import CancellationToken, is_cancelled
from ..config.loader import Config
from ..models.validation_result import (
    AssetType,
    EnhancedValidationResult,
    UNKNOWN_CONTENT_TYPE,
    ValidationResult,
    ValidationStatus,
)
from .fetch_tool import build_client

logger = logging.getLogger(__name__)

# (validated, total, transport_errors)
ProgressCallback = Callable[[int, int, int], None]

_HOSTNAME_RE = re.compile(
    r"^(?:[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9_])?\.)+(?:[a-z]{2,63}|xn--[a-z0-9-]{1,59})\.?$", re.I
)

# Slug-like last segments ("launch-of-new-probe") read as articles
SLUG_MIN_HYPHENS = 3

_ARTICLE_PATH_RE = re.compile(
    r"/\d{4}/\d{2}(/|$)|/(news|article|articles|blog|blogs|story|stories|post|posts|press-release|commentary)/",
    re.I,
)

_HTML_EXTENSIONS = (".html", ".htm", ".php", ".aspx", ".asp", ".jsp")
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".tif", ".tiff", ".bmp")
_VIDEO_EXTENSIONS = (".mp4", ".avi", ".mov", ".webm", ".mkv")
_AUDIO_EXTENSIONS = (".mp3", ".wav", ".ogg", ".flac", ".m4a")
_DOCUMENT_EXTENSIONS = (".doc", ".docx", ".ppt", ".pptx", ".odt", ".rtf", ".txt")
_DATASET_EXTENSIONS = (
    ".json", ".xml", ".csv", ".tsv", ".xls", ".xlsx", ".sql", ".db",
    ".nc", ".hdf", ".h5", ".hdf5", ".fits", ".parquet", ".geojson", ".zip",
)


def _valid_hostname(host: str) -> bool:
    try:
        ascii_host = host.encode("idna").decode("ascii")
    except UnicodeError:
        return False
    return bool(_HOSTNAME_RE.match(ascii_host))


def check_url_syntax(url: Optional[str]) -> tuple[bool, str]:
    """Offline format check: non-empty, http(s) scheme, plausible host and port."""
    if not url or not url.strip():
        return False, "URL cannot be empty"
    try:
        parsed = urlparse(url.strip())
        port = parsed.port
    except ValueError as e:
        return False, f"Malformed URL: {e}"
    if not parsed.scheme:
        return False, "URL missing scheme (http:// or https://)"
    if parsed.scheme.lower() not in ("http", "https"):
        return False, "Only HTTP and HTTPS protocols are supported"
    host = parsed.hostname
    if not host:
        return False, "URL missing host"
    if host != "localhost" and not _valid_hostname(host):
        try:
            ipaddress.ip_address(host)
        except ValueError:
            return False, f"Invalid host: {host}"
    if port is not None and not 0 < port < 65536:
        return False, f"Invalid port: {port}"
    return True, "Valid URL"


def _looks_like_article(path: str) -> bool:
    segments = [s for s in path.split("/") if s]
    if not segments:
        return False
    if _ARTICLE_PATH_RE.search(path if path.endswith("/") else path + "/"):
        return True
    last = segments[-1]
    return "." not in last and last.count("-") >= SLUG_MIN_HYPHENS


def detect_asset_type(url: str, content_type: Optional[str] = None) -> AssetType:
    """Classify by content type first, then by URL extension."""
    path = urlparse(url).path if url else ""
    lower_path = path.lower()

    if content_type and content_type != UNKNOWN_CONTENT_TYPE:
        ct = content_type.lower()
        if "text/html" in ct or "application/xhtml" in ct:
            return AssetType.ARTICLE if _looks_like_article(path) else AssetType.WEBPAGE
        if ct.startswith("image/"):
            return AssetType.IMAGE
        if ct.startswith("video/"):
            return AssetType.VIDEO
        if ct.startswith("audio/"):
            return AssetType.AUDIO
        if "application/pdf" in ct:
            return AssetType.PDF
        if (
            "spreadsheetml" in ct
            or "ms-excel" in ct
            or "json" in ct
            or "xml" in ct
            or "text/csv" in ct
            or "netcdf" in ct
            or "hdf" in ct
            or "fits" in ct
            or "parquet" in ct
        ):
            return AssetType.DATASET
        if (
            "msword" in ct
            or "officedocument" in ct
            or "ms-powerpoint" in ct
            or "opendocument" in ct
            or "rtf" in ct
            or ct.startswith("text/plain")
        ):
            return AssetType.DOCUMENT

    if lower_path.endswith(_HTML_EXTENSIONS):
        return AssetType.ARTICLE if _looks_like_article(path) else AssetType.WEBPAGE
    if lower_path.endswith(".pdf"):
        return AssetType.PDF
    if lower_path.endswith(_IMAGE_EXTENSIONS):
        return AssetType.IMAGE
    if lower_path.endswith(_VIDEO_EXTENSIONS):
        return AssetType.VIDEO
    if lower_path.endswith(_AUDIO_EXTENSIONS):
        return AssetType.AUDIO
    if lower_path.endswith(_DATASET_EXTENSIONS):
        return AssetType.DATASET
    if lower_path.endswith(_DOCUMENT_EXTENSIONS):
        return AssetType.DOCUMENT

    last_segment = lower_path.rstrip("/").rsplit("/", 1)[-1]
    if "." not in last_segment:
        return AssetType.ARTICLE if _looks_like_article(path) else AssetType.WEBPAGE
    return AssetType.OTHER


def display_name_from_url(url: Optional[str]) -> str:
    """Human-readable name from the last path segment, or the host for root URLs."""
    if not url:
        return "Unnamed URL"
    try:
        parsed = urlparse(url)
    except ValueError:
        return "Unnamed URL"
    path = unquote(parsed.path or "").rstrip("/")
    if not path:
        return parsed.hostname or "Unnamed URL"
    name = path.rsplit("/", 1)[-1]
    if "." in name[1:]:
        name = name[: name.rfind(".")]
    name = name.replace("-", " ").replace("_", " ").strip()
    if not name:
        return parsed.hostname or "Unnamed URL"
    return " ".join(word[:1].upper() + word[1:] for word in name.split())


class ValidationEngine:
    """
    Probes URLs over HTTP. validate_url never raises: every call yields exactly
    one terminal ValidationResult.
    """

    def __init__(self, config: Config, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.settings = config.validation
        self._client = build_client(
            self.settings.read_timeout,
            transport=transport,
            user_agent=config.crawl_limits.user_agent,
            connect_timeout=self.settings.connect_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _probe(self, url: str) -> tuple[int, str, str, str]:
        """Return (status_code, content_type, reason, final_url); HEAD first, GET if HEAD is refused."""
        if self.settings.head_first:
            r = self._client.head(url)
            if r.status_code not in (405, 501):
                return (
                    r.status_code,
                    r.headers.get("content-type", UNKNOWN_CONTENT_TYPE),
                    r.reason_phrase,
                    str(r.url),
                )
        # Stream so that only headers are read
        with self._client.stream("GET", url) as r:
            return (
                r.status_code,
                r.headers.get("content-type", UNKNOWN_CONTENT_TYPE),
                r.reason_phrase,
                str(r.url),
            )

    def _validate(self, url: str) -> tuple[ValidationResult, Optional[str]]:
        ok, reason = check_url_syntax(url)
        if not ok:
            return ValidationResult(url=url or "", status=ValidationStatus.INVALID, message=reason), None

        try:
            status_code, content_type, phrase, final_url = self._probe(url)
        except httpx.TimeoutException as e:
            logger.debug("Timeout validating %s: %s", url, e)
            return self._error(url, f"Connection timeout: {e or type(e).__name__}"), None
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("Connection error validating %s: %s", url, e)
            return self._error(url, f"Connection error: {e or type(e).__name__}"), None
        except Exception as e:
            logger.warning("Unexpected error validating %s", url, exc_info=True)
            return self._error(url, f"Validation error: {e}"), None

        if 200 <= status_code < 300:
            status, valid, message = ValidationStatus.VALID, True, f"HTTP {status_code} {phrase}"
        elif 300 <= status_code < 400:
            status, valid, message = ValidationStatus.WARNING, True, f"HTTP {status_code} (Redirect) {phrase}"
        else:
            status, valid, message = ValidationStatus.INVALID, False, f"HTTP {status_code} {phrase}"
        result = ValidationResult(
            url=url,
            status=status,
            status_code=status_code,
            message=message.strip(),
            content_type=content_type or UNKNOWN_CONTENT_TYPE,
            valid=valid,
        )
        return result, final_url

    @staticmethod
    def _error(url: str, message: str) -> ValidationResult:
        return ValidationResult(url=url, status=ValidationStatus.ERROR, message=message, valid=False)

    def validate_url(self, url: str) -> ValidationResult:
        """Format check, scheme check, bounded-timeout probe, status classification."""
        return self._validate(url)[0]

    def validate_enhanced(self, url: str) -> EnhancedValidationResult:
        """validate_url plus asset type, display name and timestamp."""
        basic, final_url = self._validate(url)
        content_type = basic.content_type if basic.status_code is not None else None
        metadata: dict[str, str] = {}
        if final_url and final_url != url:
            metadata["final_url"] = final_url
        return EnhancedValidationResult(
            **basic.model_dump(),
            url_id=str(uuid.uuid4()),
            display_name=display_name_from_url(url),
            asset_type=detect_asset_type(url, content_type),
            metadata=metadata,
        )

    def cancelled_result(self, url: str, enhanced: bool = False) -> ValidationResult:
        fields = dict(url=url, status=ValidationStatus.CANCELLED, message="Validation cancelled", valid=False)
        if enhanced:
            return EnhancedValidationResult(
                **fields,
                display_name=display_name_from_url(url),
                asset_type=detect_asset_type(url),
            )
        return ValidationResult(**fields)

    def pool(
        self,
        concurrency: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
        enhanced: bool = False,
    ) -> "ValidationPool":
        return ValidationPool(
            self,
            concurrency or self.settings.concurrency,
            cancel_token=cancel_token,
            progress_callback=progress_callback,
            progress_interval=self.settings.progress_interval,
            enhanced=enhanced,
        )

    def validate_urls(
        self,
        urls: Iterable[str],
        concurrency: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
        enhanced: bool = False,
    ) -> list[ValidationResult]:
        """
        Validate a batch with bounded concurrency. Returns one result per input,
        in input order; URLs skipped by cancellation get a Cancelled result.
        """
        urls = list(urls)
        if not urls:
            return []
        logger.info("Validating batch of %d URLs", len(urls))
        with self.pool(concurrency, cancel_token, progress_callback, enhanced) as pool:
            for url in urls:
                pool.submit(url)
            pool.seal()
            return [pool.result(url) for url in urls]


class ValidationPool:
    """
    Bounded worker pool that accepts URLs while they are still being discovered.
    One future per distinct URL, so a URL has at most one writer.
    """

    def __init__(
        self,
        engine: ValidationEngine,
        concurrency: int,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
        progress_interval: int = 100,
        enhanced: bool = False,
    ):
        self.engine = engine
        self.cancel_token = cancel_token
        self.progress_callback = progress_callback
        self.progress_interval = max(1, progress_interval)
        self.enhanced = enhanced
        self._executor = ThreadPoolExecutor(max_workers=max(1, concurrency), thread_name_prefix="validate")
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._completed = 0
        self._errors = 0
        self._sealed = False
        self._final_reported = False

    def __enter__(self) -> "ValidationPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        # Queued work drains quickly once the token is set
        self._executor.shutdown(wait=True)

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def errors(self) -> int:
        return self._errors

    @property
    def submitted(self) -> int:
        return len(self._futures)

    def submit(self, url: str) -> Future:
        with self._lock:
            existing = self._futures.get(url)
            if existing is not None:
                return existing
            future = self._executor.submit(self._run, url)
            self._futures[url] = future
            return future

    def has(self, url: str) -> bool:
        return url in self._futures

    def result(self, url: str) -> ValidationResult:
        return self.submit(url).result()

    def seal(self) -> None:
        """Mark the submitted set as complete so the final progress report can fire."""
        with self._lock:
            self._sealed = True
            final = self._take_final()
        if final:
            self._report(*final)

    def results(self) -> dict[str, ValidationResult]:
        """Results keyed by URL; blocks until every submitted URL has one."""
        self.seal()
        with self._lock:
            futures = dict(self._futures)
        return {url: future.result() for url, future in futures.items()}

    def _run(self, url: str) -> ValidationResult:
        if is_cancelled(self.cancel_token):
            result = self.engine.cancelled_result(url, self.enhanced)
        else:
            try:
                if self.enhanced:
                    result = self.engine.validate_enhanced(url)
                else:
                    result = self.engine.validate_url(url)
            except Exception as e:
                logger.exception("Validation worker failed for %s", url)
                result = ValidationEngine._error(url, f"Validation error: {e}")
                if self.enhanced:
                    result = EnhancedValidationResult(**result.model_dump(), display_name=display_name_from_url(url))
        self._record(result)
        return result

    def _record(self, result: ValidationResult) -> None:
        with self._lock:
            self._completed += 1
            if result.status == ValidationStatus.ERROR:
                self._errors += 1
            completed, total, errors = self._completed, len(self._futures), self._errors
            final = self._take_final()
        if final:
            self._report(*final)
        elif completed % self.progress_interval == 0:
            self._report(completed, total, errors)

    def _take_final(self) -> Optional[tuple[int, int, int]]:
        # Caller holds the lock. While URLs may still arrive, completed == total is not the end.
        if not self._sealed or self._final_reported or self._completed < len(self._futures):
            return None
        self._final_reported = True
        return self._completed, len(self._futures), self._errors

    def _report(self, completed: int, total: int, errors: int) -> None:
        if not self.progress_callback:
            return
        try:
            self.progress_callback(completed, total, errors)
        except Exception:
            logger.warning("Progress callback failed", exc_info=True)
