"""Package descriptor parsing.

A package carries a ``.nuspec`` descriptor: an XML document whose
``<metadata>`` element lists the package id, title, version, publish date
and release notes. This module owns reading and writing exactly those
fields; nothing else in the descriptor is interpreted.
"""

from __future__ import annotations

import datetime
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional, Union

import pydantic
from pydantic import ConfigDict, Field, field_validator

from vellum.packaging.result import Result
from vellum.utils.exceptions import MetadataInvalidError

NUSPEC_NAMESPACE = "http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"
DESCRIPTOR_EXTENSION = ".nuspec"

# NuGet versions allow a fourth numeric part on top of semver.
VERSION_PATTERN = re.compile(
    r'^\d+(\.\d+){1,3}(-[0-9A-Za-z][0-9A-Za-z.-]*)?(\+[0-9A-Za-z.-]+)?$'
)

# descriptor element name -> PackageMetadata field name
_ELEMENT_FIELDS = {
    "id": "id",
    "title": "title",
    "version": "version",
    "published": "published_at",
    "releaseNotes": "release_notes",
    "authors": "authors",
    "description": "description",
    "projectUrl": "project_url",
    "iconUrl": "icon_url",
    "tags": "tags",
}

# Free-text fields keep their whitespace; the rest are trimmed.
_TEXT_FIELDS = ("title", "release_notes", "authors", "description")


class PackageMetadata(pydantic.BaseModel):
    """Metadata record read from a package descriptor.

    Attributes:
        id: Package id, unique per package
        title: Human-readable title
        version: Semantic (or four-part NuGet) version string
        published_at: When the version was published, if known
        release_notes: Release notes for this version
        authors: Comma-separated author list
        description: Package description
        project_url: Project home page
        icon_url: Icon location
        tags: Space-separated tags, split into a list
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    version: str
    published_at: Optional[datetime.datetime] = None
    release_notes: str = ""
    authors: str = ""
    description: str = ""
    project_url: Optional[str] = None
    icon_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Package id must not be empty')
        return v

    @field_validator('version')
    @classmethod
    def validate_version(cls, v: str) -> str:
        v = v.strip()
        if not VERSION_PATTERN.match(v):
            raise ValueError(f"Version must be in semantic versioning format (e.g., '1.2.3'), got {v!r}")
        return v

    @field_validator('tags', mode='before')
    @classmethod
    def split_tags(cls, v: Union[str, List[str], None]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return v.split()
        return list(v)

    @property
    def id_with_version(self) -> str:
        """Directory-style name ``{id}.{version}`` used by the package cache."""
        return f"{self.id}.{self.version}"

    def matches_id(self, package_id: str) -> bool:
        """Check the record against an expected id, ignoring case."""
        return self.id.lower() == package_id.strip().lower()


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def metadata_from_element(metadata_element: ET.Element) -> PackageMetadata:
    """Build a metadata record from a ``<metadata>`` element.

    Raises:
        MetadataInvalidError: If the element has no fields or fails validation
    """
    fields: Dict[str, str] = {}
    for child in metadata_element:
        name = _ELEMENT_FIELDS.get(_local_name(child.tag))
        if name is not None:
            text = child.text or ""
            fields[name] = text if name in _TEXT_FIELDS else text.strip()

    if not fields:
        raise MetadataInvalidError("Package descriptor contains no metadata fields")

    values = {key: value for key, value in fields.items() if value or key in ("id", "version")}
    try:
        return PackageMetadata(**values)
    except pydantic.ValidationError as e:
        errors = ', '.join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise MetadataInvalidError(
            f"Package descriptor is not valid: {errors}",
            package_id=fields.get("id") or None,
        ) from e


def read_descriptor(descriptor_path: Union[str, Path]) -> PackageMetadata:
    """Read a descriptor, raising on any problem.

    Raises:
        MetadataInvalidError: If the descriptor is absent, unreadable or invalid
    """
    path = Path(descriptor_path)
    if not path.is_file():
        raise MetadataInvalidError(f"Package descriptor not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise MetadataInvalidError(f"Package descriptor {path} could not be read: {e}") from e

    return metadata_from_document(data, source=str(path))


def metadata_from_document(data: bytes, source: str = "descriptor") -> PackageMetadata:
    """Parse descriptor XML held in memory.

    Args:
        data: Raw descriptor document
        source: Name used in error messages

    Raises:
        MetadataInvalidError: If the document is not XML or has no usable metadata
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise MetadataInvalidError(f"Package descriptor {source} could not be read: {e}") from e

    if _local_name(root.tag) == "metadata":
        metadata_element = root
    else:
        metadata_element = next(
            (child for child in root if _local_name(child.tag) == "metadata"), None
        )
    if metadata_element is None:
        raise MetadataInvalidError(f"Package descriptor {source} has no metadata element")

    return metadata_from_element(metadata_element)


def parse_descriptor(descriptor_path: Union[str, Path]) -> Result[PackageMetadata]:
    """Parse a package descriptor into a metadata record.

    This never touches any file other than the descriptor itself.

    Args:
        descriptor_path: Path to the ``.nuspec`` file

    Returns:
        Result carrying the metadata, or a MetadataInvalidError
    """
    try:
        return Result.success(read_descriptor(descriptor_path))
    except MetadataInvalidError as e:
        return Result.failure(e)


def find_descriptor(directory: Union[str, Path]) -> Optional[Path]:
    """Find the first descriptor file directly inside a directory.

    Args:
        directory: Directory to search

    Returns:
        Path to the descriptor, or None if there is none
    """
    directory = Path(directory)
    if not directory.is_dir():
        return None
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.suffix.lower() == DESCRIPTOR_EXTENSION:
            return path
    return None


def write_descriptor(metadata: PackageMetadata, descriptor_path: Union[str, Path]) -> Path:
    """Write a metadata record as a nuspec document.

    Empty optional fields are omitted, so reading the file back yields a
    record equal to ``metadata``.

    Args:
        metadata: Record to write
        descriptor_path: Destination file

    Returns:
        The written path
    """
    path = Path(descriptor_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    package = ET.Element("package", {"xmlns": NUSPEC_NAMESPACE})
    metadata_element = ET.SubElement(package, "metadata")
    values = {
        "id": metadata.id,
        "version": metadata.version,
        "title": metadata.title,
        "authors": metadata.authors,
        "description": metadata.description,
        "releaseNotes": metadata.release_notes,
        "published": metadata.published_at.isoformat() if metadata.published_at else "",
        "projectUrl": metadata.project_url or "",
        "iconUrl": metadata.icon_url or "",
        "tags": " ".join(metadata.tags),
    }
    for element_name, text in values.items():
        if text:
            ET.SubElement(metadata_element, element_name).text = text

    tree = ET.ElementTree(package)
    ET.indent(tree)
    tree.write(path, encoding="utf-8", xml_declaration=True)
    return path
