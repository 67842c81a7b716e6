"""Package feed clients.

A feed answers two questions: what is the latest version of a package, and
what are the bytes of a given version. The HTTP client speaks the NuGet v2
OData protocol used by the public stable and nightly feeds; the directory
client serves archives from a local folder for offline deployments.
"""

from __future__ import annotations

import abc
import enum
import functools
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
import pydantic
import structlog
from pydantic import ConfigDict
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from vellum.__version__ import __version__
from vellum.packaging.archive import ARCHIVE_EXTENSION, read_archive_metadata
from vellum.packaging.metadata import VERSION_PATTERN, PackageMetadata
from vellum.packaging.result import Result
from vellum.packaging.versions import compare_versions
from vellum.utils.exceptions import (
    FeedUnavailableError,
    MetadataInvalidError,
    PackageNotFoundError,
    PackagingError,
)

ATOM_NS = "http://www.w3.org/2005/Atom"
DATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"
METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"


class FeedChannel(str, enum.Enum):
    """Release channel a feed endpoint serves."""

    STABLE = "stable"
    NIGHTLY = "nightly"


DEFAULT_SOURCES: Dict[str, str] = {
    FeedChannel.STABLE.value: "https://packages.nuget.org/api/v2",
    FeedChannel.NIGHTLY.value: "https://www.myget.org/F/siteserver/api/v2",
}


class PackageSource(pydantic.BaseModel):
    """Immutable description of a feed endpoint.

    Attributes:
        base_url: Feed root URL
        channel: Release channel served by the endpoint
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    channel: FeedChannel = FeedChannel.STABLE

    @classmethod
    def for_channel(
            cls,
            channel: Union[str, FeedChannel],
            sources: Optional[Mapping[str, str]] = None
    ) -> PackageSource:
        """Build the source for a channel from the configured endpoints.

        Args:
            channel: Channel selected by configuration
            sources: Channel name to base URL mapping (defaults to the public feeds)

        Raises:
            ValueError: If no endpoint is configured for the channel
        """
        channel = FeedChannel(channel)
        sources = sources or DEFAULT_SOURCES
        if channel.value not in sources:
            raise ValueError(f"No feed source configured for channel {channel.value!r}")
        return cls(base_url=sources[channel.value].rstrip("/"), channel=channel)


class FeedClient(abc.ABC):
    """Interface to a remote (or local) package source."""

    @abc.abstractmethod
    def find_latest(self, package_id: str) -> Result[PackageMetadata]:
        """Look up the latest version of a package.

        Never raises: an unreachable feed or an unknown package is reported
        as a failed Result, so update checks can treat absence as normal.
        """

    @abc.abstractmethod
    def fetch_archive(self, package_id: str, version: str) -> Result[bytes]:
        """Fetch the archive of one package version.

        A missing package or version is a failure carrying PackageNotFoundError.
        """


class HttpFeedClient(FeedClient):
    """Client for a NuGet v2 feed.

    Attributes:
        source: Endpoint queried by this client
        timeout: Request timeout in seconds
        allow_prerelease: Whether prerelease versions count as latest
    """

    def __init__(
            self,
            source: PackageSource,
            timeout: float = 30.0,
            max_retries: int = 3,
            retry_wait: float = 1.0,
            allow_prerelease: bool = False,
            transport: Optional[httpx.BaseTransport] = None,
            logger: Optional[Any] = None
    ) -> None:
        """Initialize a feed client.

        Args:
            source: Endpoint to query
            timeout: Request timeout in seconds
            max_retries: Attempts per request on transport errors
            retry_wait: Base delay for exponential backoff between attempts
            allow_prerelease: Whether prerelease versions count as latest
            transport: Optional httpx transport (used to stub the network)
            logger: Structured logger
        """
        self.source = source
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_wait = retry_wait
        self.allow_prerelease = allow_prerelease
        self._logger = logger or structlog.get_logger(__name__)
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers=self._get_headers(),
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> HttpFeedClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for feed requests.

        Returns:
            Dictionary of HTTP headers
        """
        return {
            "User-Agent": f"VellumPackageClient/{__version__}",
            "Accept": "application/atom+xml, application/xml, */*",
        }

    def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        """GET a URL, retrying transport errors with exponential backoff."""
        retrying = Retrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait, max=10),
            reraise=True,
        )
        return retrying(self._client.get, url, params=params)

    def find_latest(self, package_id: str) -> Result[PackageMetadata]:
        """Look up the latest version of a package on the feed.

        Args:
            package_id: Id of the package

        Returns:
            Result carrying the latest metadata; FeedUnavailableError or
            PackageNotFoundError on failure
        """
        latest_filter = "IsAbsoluteLatestVersion" if self.allow_prerelease else "IsLatestVersion"
        try:
            response = self._get(
                f"{self.source.base_url}/FindPackagesById()",
                params={"id": f"'{package_id}'", "$filter": latest_filter},
            )
            if response.status_code == 404:
                raise PackageNotFoundError(
                    f"Package {package_id} not found on {self.source.channel.value} feed",
                    package_id=package_id,
                )
            response.raise_for_status()

            entries = parse_feed_entries(response.content)
            if not entries:
                raise PackageNotFoundError(
                    f"Package {package_id} not found on {self.source.channel.value} feed",
                    package_id=package_id,
                )
            metadata = select_latest(entries, latest_filter)

            self._logger.debug(
                "Found latest package version",
                package_id=package_id,
                version=metadata.version,
                channel=self.source.channel.value,
            )
            return Result.success(metadata)

        except PackagingError as e:
            return Result.failure(e)
        except httpx.HTTPStatusError as e:
            return Result.failure(FeedUnavailableError(
                f"Feed returned error: {e.response.status_code}",
                package_id=package_id,
            ))
        except Exception as e:
            self._logger.warning("Feed lookup failed", package_id=package_id, error=str(e))
            return Result.failure(FeedUnavailableError(
                f"Failed to query feed {self.source.base_url}: {e}",
                package_id=package_id,
            ))

    def fetch_archive(self, package_id: str, version: str) -> Result[bytes]:
        """Download the archive of one package version.

        Args:
            package_id: Id of the package
            version: Exact version to download

        Returns:
            Result carrying the archive bytes
        """
        url = f"{self.source.base_url}/package/{package_id}/{version}"
        self._logger.info("Downloading package", package_id=package_id, version=version, url=url)
        try:
            response = self._get(url)
            if response.status_code == 404:
                return Result.failure(PackageNotFoundError(
                    f"Package {package_id} {version} not found on {self.source.channel.value} feed",
                    package_id=package_id,
                    version=version,
                ))
            response.raise_for_status()
            if not response.content:
                return Result.failure(FeedUnavailableError(
                    f"Feed returned an empty archive for {package_id} {version}",
                    package_id=package_id,
                    version=version,
                ))
            return Result.success(response.content)

        except httpx.HTTPStatusError as e:
            return Result.failure(FeedUnavailableError(
                f"Feed returned error: {e.response.status_code}",
                package_id=package_id,
                version=version,
            ))
        except httpx.HTTPError as e:
            return Result.failure(FeedUnavailableError(
                f"Failed to connect to feed: {e}",
                package_id=package_id,
                version=version,
            ))


def _text(element: Optional[ET.Element]) -> str:
    if element is None or element.get(f"{{{METADATA_NS}}}null") == "true":
        return ""
    return (element.text or "").strip()


def parse_feed_entries(content: bytes) -> List[Dict[str, str]]:
    """Parse an OData Atom feed into one property dictionary per entry.

    Raises:
        FeedUnavailableError: If the response is not a readable feed
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise FeedUnavailableError(f"Feed response is not valid XML: {e}") from e

    if root.tag == f"{{{ATOM_NS}}}entry":
        entry_elements = [root]
    else:
        entry_elements = root.findall(f"{{{ATOM_NS}}}entry")

    entries = []
    for entry in entry_elements:
        properties = entry.find(f"{{{METADATA_NS}}}properties")
        if properties is None:
            properties = entry.find(f"{{{ATOM_NS}}}content/{{{METADATA_NS}}}properties")
        values = {}
        if properties is not None:
            for child in properties:
                values[child.tag.rsplit("}", 1)[-1]] = _text(child)
        if not values.get("Id"):
            values["Id"] = _text(entry.find(f"{{{ATOM_NS}}}title"))
        entries.append(values)
    return entries


def entry_to_metadata(entry: Mapping[str, str]) -> PackageMetadata:
    """Convert feed entry properties into a metadata record.

    Raises:
        MetadataInvalidError: If the entry lacks an id or a valid version
    """
    fields: Dict[str, Any] = {
        "id": entry.get("Id", ""),
        "version": entry.get("NormalizedVersion") or entry.get("Version", ""),
        "title": entry.get("Title", ""),
        "release_notes": entry.get("ReleaseNotes", ""),
        "authors": entry.get("Authors", ""),
        "description": entry.get("Description", ""),
        "tags": entry.get("Tags", ""),
    }
    for key, field_name in (("Published", "published_at"), ("ProjectUrl", "project_url"), ("IconUrl", "icon_url")):
        if entry.get(key):
            fields[field_name] = entry[key]
    try:
        return PackageMetadata(**fields)
    except pydantic.ValidationError as e:
        raise MetadataInvalidError(
            f"Feed entry for {fields['id'] or 'unknown package'} is not valid: {e}",
            package_id=fields["id"] or None,
        ) from e


def select_latest(entries: List[Dict[str, str]], latest_flag: str = "IsLatestVersion") -> PackageMetadata:
    """Pick the latest version among feed entries.

    An entry flagged as latest by the feed wins; otherwise the highest version.
    """
    flagged = [entry for entry in entries if entry.get(latest_flag, "").lower() == "true"]
    candidates = [entry_to_metadata(entry) for entry in (flagged or entries)]
    return max(candidates, key=functools.cmp_to_key(lambda a, b: compare_versions(a.version, b.version)))


class DirectoryFeedClient(FeedClient):
    """Feed backed by ``{id}.{version}.nupkg`` files in a local directory.

    Attributes:
        root: Directory holding the archives
    """

    def __init__(self, root: Union[str, Path], logger: Optional[Any] = None) -> None:
        self.root = Path(root)
        self._logger = logger or structlog.get_logger(__name__)

    def _archives(self, package_id: str) -> Dict[str, Path]:
        """Map version -> archive path for one package id."""
        prefix = f"{package_id.lower()}."
        archives: Dict[str, Path] = {}
        if not self.root.is_dir():
            return archives
        for path in self.root.iterdir():
            name = path.name.lower()
            if path.is_file() and name.startswith(prefix) and name.endswith(ARCHIVE_EXTENSION):
                version = path.name[len(prefix):-len(ARCHIVE_EXTENSION)]
                if VERSION_PATTERN.match(version):
                    archives[version] = path
        return archives

    def find_latest(self, package_id: str) -> Result[PackageMetadata]:
        try:
            archives = self._archives(package_id)
            if not archives:
                raise PackageNotFoundError(
                    f"Package {package_id} not found in {self.root}", package_id=package_id
                )
            latest = max(archives, key=functools.cmp_to_key(compare_versions))
            return Result.success(read_archive_metadata(archives[latest]))
        except PackagingError as e:
            return Result.failure(e)
        except OSError as e:
            return Result.failure(FeedUnavailableError(
                f"Failed to read feed directory {self.root}: {e}", package_id=package_id
            ))

    def fetch_archive(self, package_id: str, version: str) -> Result[bytes]:
        try:
            archives = self._archives(package_id)
            path = next(
                (p for v, p in archives.items() if compare_versions(v, version) == 0), None
            )
            if path is None:
                return Result.failure(PackageNotFoundError(
                    f"Package {package_id} {version} not found in {self.root}",
                    package_id=package_id,
                    version=version,
                ))
            return Result.success(path.read_bytes())
        except OSError as e:
            return Result.failure(FeedUnavailableError(
                f"Failed to read feed directory {self.root}: {e}",
                package_id=package_id,
                version=version,
            ))
