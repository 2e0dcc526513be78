"""
MODIS Tile Downloader Module

This module resolves and downloads MODIS tiles from the archive:
1. Anonymous FTP (primary)
2. Anonymous HTTPS directory index (same tree, for networks that block FTP)
3. Simulated archive (offline testing)

Archive filenames carry a production timestamp that cannot be predicted, so
each fetch lists the day directory and takes the first entry starting with
the partial filename built from the request.

Every network or archive error is turned into a failed FetchResult here;
callers never see exceptions from a fetch.
"""

import ftplib
import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .config import PipelineConfig, DEFAULT_CONFIG
from .utils import (
    build_partial_filename,
    counterpart_product,
    find_first_match,
    format_tile,
    resolve,
)

USER_AGENT = "modis-pipeline/1.0"


# =============================================================================
# ERRORS
# =============================================================================

class ArchiveError(Exception):
    """Base class for errors raised by archive sources."""


class ArchiveConnectionError(ArchiveError):
    """Host unreachable, login refused or directory missing."""


class TransferError(ArchiveError):
    """Listing or download failed after the connection was established."""


# =============================================================================
# REQUEST / RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class DownloadRequest:
    """One product/day/tile to fetch."""
    product: str
    year: int
    day_of_year: int
    h: int
    v: int
    with_counterpart: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'product', self.product.upper())

    @property
    def partial_filename(self) -> str:
        return build_partial_filename(self.product, self.year, self.day_of_year,
                                      self.h, self.v)

    @property
    def tile(self) -> str:
        return format_tile(self.h, self.v)

    def counterpart(self) -> Optional['DownloadRequest']:
        """Same day/tile on the other platform, or None if the product has none."""
        alternate = counterpart_product(self.product)
        if alternate is None:
            return None
        return replace(self, product=alternate, with_counterpart=False)

    def describe(self) -> str:
        return f"{self.product} {self.year}/{self.day_of_year:03d} {self.tile}"


class FailureReason(Enum):
    CONNECTION = 'connection'
    NO_MATCH = 'no_match'
    TRANSFER = 'transfer'


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of a single fetch.

    Either ok with the resolved filename and local path, or not ok with a
    failure reason. Use the success()/failure() constructors.
    """
    request: DownloadRequest
    ok: bool
    filename: Optional[str] = None
    local_path: Optional[Path] = None
    reason: Optional[FailureReason] = None
    message: str = ''

    @classmethod
    def success(cls, request: DownloadRequest, filename: str,
                local_path: Path) -> 'FetchResult':
        return cls(request=request, ok=True, filename=filename, local_path=local_path)

    @classmethod
    def failure(cls, request: DownloadRequest, reason: FailureReason,
                message: str = '') -> 'FetchResult':
        return cls(request=request, ok=False, reason=reason, message=message)


# =============================================================================
# ARCHIVE SOURCE ABSTRACTION
# =============================================================================

class ArchiveSession:
    """An open connection scoped to one archive directory."""

    def list_names(self) -> List[str]:
        """Entry names of the directory, in server order."""
        raise NotImplementedError

    def retrieve(self, name: str, local_path: Path):
        """Download one entry of the directory to local_path."""
        raise NotImplementedError


class ArchiveSource:
    """
    Base class for archive access methods.

    Subclasses implement connect(), a context manager yielding an
    ArchiveSession and releasing the connection on exit, whatever happened
    inside the block.
    """

    def __init__(self, config: PipelineConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger

    def connect(self, remote_dir: str):
        raise NotImplementedError


# =============================================================================
# FTP SOURCE
# =============================================================================

class FTPSession(ArchiveSession):

    def __init__(self, ftp: ftplib.FTP, remote_dir: str, logger: logging.Logger):
        self.ftp = ftp
        self.remote_dir = remote_dir
        self.logger = logger

    def list_names(self) -> List[str]:
        try:
            names = self.ftp.nlst()
        except ftplib.error_perm as e:
            # Empty directories answer NLST with "550 No files found"
            if str(e).startswith('550'):
                self.logger.debug(f"Empty listing for {self.remote_dir}: {e}")
                return []
            raise TransferError(f"Listing {self.remote_dir} failed: {e}") from e
        except (ftplib.all_errors + (UnicodeDecodeError,)) as e:
            # nlst decodes names strictly as UTF-8
            raise TransferError(f"Listing {self.remote_dir} failed: {e}") from e

        # Some servers return paths rather than bare names
        return [name.rsplit('/', 1)[-1] for name in names]

    def retrieve(self, name: str, local_path: Path):
        self.logger.debug(f"RETR {self.remote_dir}{name} -> {local_path}")
        try:
            with open(local_path, 'wb') as f:
                self.ftp.retrbinary(f"RETR {name}", f.write)
        except ftplib.all_errors as e:
            raise TransferError(f"Download of {name} failed: {e}") from e


class FTPArchiveSource(ArchiveSource):
    """
    Anonymous FTP access to the archive.

    Layout:
        ftp://<host>/allData/<collection>/<PRODUCT>/<YYYY>/<DDD>/<file>

    ftp_factory builds the (unconnected) client; tests pass a stand-in.
    """

    def __init__(self, config: PipelineConfig, logger: logging.Logger,
                 ftp_factory: Callable[..., ftplib.FTP] = ftplib.FTP):
        super().__init__(config, logger)
        self.ftp_factory = ftp_factory

    @contextmanager
    def connect(self, remote_dir: str) -> Iterator[FTPSession]:
        archive = self.config.archive
        ftp = self.ftp_factory(timeout=archive.request_timeout)
        connected = False
        try:
            try:
                ftp.connect(archive.host, archive.port)
                connected = True
                ftp.login()
                ftp.cwd(remote_dir)
            except (ftplib.all_errors + (UnicodeDecodeError,)) as e:
                raise ArchiveConnectionError(
                    f"ftp://{archive.host}/{remote_dir}: {e}"
                ) from e
            yield FTPSession(ftp, remote_dir, self.logger)
        finally:
            self._release(ftp, connected)

    def _release(self, ftp: ftplib.FTP, connected: bool):
        if not connected:
            ftp.close()
            return
        try:
            ftp.quit()
        except ftplib.all_errors as e:
            self.logger.debug(f"QUIT failed ({e}), closing socket")
            ftp.close()


# =============================================================================
# HTTPS SOURCE
# =============================================================================

class HTTPSession(ArchiveSession):

    def __init__(self, session: requests.Session, dir_url: str, index_html: str,
                 timeout: int, logger: logging.Logger):
        self.session = session
        self.dir_url = dir_url
        self.index_html = index_html
        self.timeout = timeout
        self.logger = logger

    def list_names(self) -> List[str]:
        """Entries linked from the directory index page, in page order."""
        soup = BeautifulSoup(self.index_html, 'html.parser')
        names = []
        seen = set()
        for link in soup.find_all('a'):
            href = link.get('href')
            if not href or href.startswith('?'):
                continue
            full = urljoin(self.dir_url, href)
            if not full.startswith(self.dir_url):
                continue
            name = full[len(self.dir_url):].strip('/')
            if name and '/' not in name and name not in seen:
                seen.add(name)
                names.append(name)
        return names

    def retrieve(self, name: str, local_path: Path):
        url = self.dir_url + name
        self.logger.debug(f"GET {url} -> {local_path}")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            with open(local_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=65536):
                    if chunk:
                        f.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise TransferError(f"Download of {url} failed: {e}") from e


class HTTPArchiveSource(ArchiveSource):
    """
    Anonymous HTTPS access to the same allData tree.

    The day directory is served as an HTML index; its links are the listing.
    """

    def __init__(self, config: PipelineConfig, logger: logging.Logger,
                 session_factory: Callable[[], requests.Session] = requests.Session):
        super().__init__(config, logger)
        self.session_factory = session_factory

    def get_dir_url(self, remote_dir: str) -> str:
        return f"{self.config.archive.https_base_url.rstrip('/')}/{remote_dir}"

    @contextmanager
    def connect(self, remote_dir: str) -> Iterator[HTTPSession]:
        dir_url = self.get_dir_url(remote_dir)
        timeout = self.config.archive.request_timeout
        with self.session_factory() as session:
            session.headers.update({'User-Agent': USER_AGENT})
            try:
                response = session.get(dir_url, timeout=timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                raise ArchiveConnectionError(f"{dir_url}: {e}") from e
            yield HTTPSession(session, dir_url, response.text, timeout, self.logger)


# =============================================================================
# SIMULATED SOURCE (FOR TESTING/DEMO)
# =============================================================================

class SimulatedSession(ArchiveSession):

    def __init__(self, names: List[str], failing: Iterable[str]):
        self.names = names
        self.failing = set(failing)

    def list_names(self) -> List[str]:
        return list(self.names)

    def retrieve(self, name: str, local_path: Path):
        if name in self.failing:
            raise TransferError(f"Simulated transfer failure for {name}")
        try:
            local_path.write_bytes(f"SIMULATED {name}\n".encode())
        except OSError as e:
            raise TransferError(f"Writing {local_path} failed: {e}") from e


class SimulatedArchiveSource(ArchiveSource):
    """
    Offline archive for testing.

    Serves explicit listings ({remote_dir: [names]}) when given, otherwise
    generates a plausible listing for every configured tile. Directories in
    `unreachable` fail to connect; names in `failing` fail to transfer.

    Tracks open connections so tests can check they are always released.
    """

    def __init__(self, config: PipelineConfig, logger: logging.Logger,
                 listings: Optional[Dict[str, List[str]]] = None,
                 unreachable: Iterable[str] = (),
                 failing: Iterable[str] = ()):
        super().__init__(config, logger)
        self.listings = listings
        self.unreachable = set(unreachable)
        self.failing = set(failing)
        self.open_connections = 0
        self.connections: List[str] = []
        self.logger.info("Using SIMULATED archive for testing")

    @contextmanager
    def connect(self, remote_dir: str) -> Iterator[SimulatedSession]:
        self.connections.append(remote_dir)
        if remote_dir in self.unreachable:
            raise ArchiveConnectionError(f"Simulated unreachable directory {remote_dir}")
        self.open_connections += 1
        try:
            yield SimulatedSession(self._listing(remote_dir), self.failing)
        finally:
            self.open_connections -= 1

    def _listing(self, remote_dir: str) -> List[str]:
        if self.listings is not None:
            return self.listings.get(remote_dir, [])
        return self.generate_listing(remote_dir)

    def generate_listing(self, remote_dir: str) -> List[str]:
        """
        Build a listing for <root>/<collection>/<PRODUCT>/<YYYY>/<DDD>/.

        Each configured tile gets an .hdf and its .hdf.xml sidecar; a browse
        image that never matches a partial filename is listed first.
        """
        parts = remote_dir.strip('/').split('/')
        if len(parts) < 4:
            return []
        collection, product, year, doy = parts[-4:]
        try:
            collection_num, year_num, doy_num = int(collection), int(year), int(doy)
        except ValueError:
            return []

        # Reprocessing happens years later; keep the timestamp parseable
        production = f"{year_num + 5:04d}{(doy_num - 1) % 365 + 1:03d}120000"

        names = [f"BROWSE.{product}.A{year}{doy}.jpg"]
        for h, v in self.config.product.tiles:
            stem = f"{build_partial_filename(product, year_num, doy_num, h, v)}" \
                   f".{collection_num:03d}.{production}"
            names.append(f"{stem}.hdf")
            names.append(f"{stem}.hdf.xml")
        return names


# =============================================================================
# MAIN DOWNLOADER CLASS
# =============================================================================

def create_source(config: PipelineConfig, logger: logging.Logger,
                  use_simulated: bool = False) -> ArchiveSource:
    """Build the archive source for the configured transport."""
    transport = 'simulated' if use_simulated else config.archive.transport
    if transport == 'ftp':
        return FTPArchiveSource(config, logger)
    if transport == 'https':
        return HTTPArchiveSource(config, logger)
    return SimulatedArchiveSource(config, logger)


class ModisDownloader:
    """
    Transfer driver: one request in, one FetchResult out.

    A fetch opens one connection, lists the day directory, downloads the
    first matching entry into the output directory and releases the
    connection. Failures are logged and returned, never raised.
    """

    def __init__(self, config: PipelineConfig = None,
                 source: Optional[ArchiveSource] = None,
                 use_simulated: bool = False):
        """
        Initialize the downloader.

        Args:
            config: Pipeline configuration (uses default if None)
            source: Archive source (built from config.archive.transport if None)
            use_simulated: Use the offline archive for testing
        """
        self.config = config or DEFAULT_CONFIG

        self.logger = logging.getLogger('modis_pipeline.downloader')
        self.source = source or create_source(self.config, self.logger, use_simulated)

        self.logger.debug(f"Initialized ModisDownloader with {type(self.source).__name__}")

    def fetch(self, request: DownloadRequest) -> FetchResult:
        """Resolve and download a single tile."""
        archive = self.config.archive
        partial, remote_dir = resolve(
            request.product, request.year, request.day_of_year,
            request.h, request.v,
            collection_version=archive.collection_version,
            root=archive.root,
        )
        self.logger.debug(f"Looking for {partial}* in {remote_dir}")

        local_path = None
        try:
            with self.source.connect(remote_dir) as session:
                names = session.list_names()
                filename = find_first_match(names, partial)
                if filename is None:
                    message = f"No entry matching {partial} in {remote_dir} ({len(names)} listed)"
                    self.logger.warning(f"{request.describe()}: {message}")
                    return FetchResult.failure(request, FailureReason.NO_MATCH, message)

                local_path = self.config.storage.get_tile_path(filename)
                self._prepare_output_dir()
                session.retrieve(filename, local_path)

        except ArchiveConnectionError as e:
            self.logger.warning(f"{request.describe()}: connection failed - {e}")
            return FetchResult.failure(request, FailureReason.CONNECTION, str(e))

        except TransferError as e:
            self.logger.warning(f"{request.describe()}: transfer failed - {e}")
            if local_path is not None:
                self._discard(local_path)
            return FetchResult.failure(request, FailureReason.TRANSFER, str(e))

        self.logger.info(f"Downloaded {filename}")
        return FetchResult.success(request, filename, local_path)

    def fetch_with_counterpart(self, request: DownloadRequest) -> List[FetchResult]:
        """
        Fetch the request and, if it asks for it, the counterpart platform.

        The two fetches are independent; both results are returned.
        """
        results = [self.fetch(request)]
        if request.with_counterpart:
            counterpart = request.counterpart()
            if counterpart is None:
                self.logger.warning(f"{request.product} has no counterpart platform")
            else:
                results.append(self.fetch(counterpart))
        return results

    def _prepare_output_dir(self):
        """Create the output directory on first download."""
        try:
            self.config.storage.ensure_directories()
        except OSError as e:
            raise TransferError(
                f"Cannot create output directory {self.config.storage.output_dir}: {e}"
            ) from e

    def _discard(self, local_path: Path):
        """Remove a partially written file."""
        if local_path.is_file():
            try:
                local_path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to delete partial file {local_path}: {e}")
