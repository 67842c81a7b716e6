"""Unit tests for package archive handling."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from vellum.packaging.archive import (
    create_archive,
    expand_archive,
    extract_descriptor,
    read_archive_metadata,
    write_atomic,
)
from vellum.utils.exceptions import MetadataInvalidError, PackageIOError


def test_read_archive_metadata(plugin_archive: bytes) -> None:
    """Test reading the descriptor straight from archive bytes."""
    metadata = read_archive_metadata(plugin_archive)

    assert metadata.id == "acme.widgets"
    assert metadata.version == "1.2.0"


def test_extract_descriptor(tmp_path: Path, plugin_archive: bytes) -> None:
    """Test extracting only the descriptor."""
    archive_path = tmp_path / "acme.widgets.1.2.0.nupkg"
    archive_path.write_bytes(plugin_archive)

    destination = extract_descriptor(archive_path, tmp_path / "entry" / "acme.widgets.nuspec")

    assert destination.read_text(encoding="utf-8").count("<id>acme.widgets</id>") == 1
    assert sorted(p.name for p in (tmp_path / "entry").iterdir()) == ["acme.widgets.nuspec"]


def test_extract_descriptor_without_descriptor(tmp_path: Path) -> None:
    """Test an archive that has no descriptor at its root."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("nested/acme.nuspec", "<package />")

    with pytest.raises(MetadataInvalidError):
        extract_descriptor(buffer.getvalue(), tmp_path / "acme.nuspec")
    assert not (tmp_path / "acme.nuspec").exists()


def test_corrupt_archive(tmp_path: Path) -> None:
    """Test that a corrupt archive raises a package IO error."""
    with pytest.raises(PackageIOError):
        read_archive_metadata(b"definitely not a zip file")


def test_expand_archive_skips_packaging_artefacts(tmp_path: Path, plugin_archive: bytes) -> None:
    """Test expansion leaves out the descriptor and NuGet artefacts."""
    expand_archive(plugin_archive, tmp_path)

    expanded = {p.relative_to(tmp_path).as_posix() for p in tmp_path.rglob("*") if p.is_file()}
    assert expanded == {
        "content/index.html",
        "content/css/site.css",
        "lib/net40/acme.widgets.dll",
        "lib/net462/acme.widgets.dll",
    }


def test_expand_archive_overwrites(tmp_path: Path, archive_factory: Callable[..., bytes]) -> None:
    """Test that expansion overwrites existing files."""
    (tmp_path / "content").mkdir()
    (tmp_path / "content" / "index.html").write_text("old")

    expand_archive(archive_factory("acme", "1.0.0", files={"content/index.html": "new"}), tmp_path)

    assert (tmp_path / "content" / "index.html").read_text() == "new"


def test_expand_archive_rejects_escaping_members(tmp_path: Path, archive_factory: Callable[..., bytes]) -> None:
    """Test that members resolving outside the destination are rejected."""
    archive = archive_factory("acme", "1.0.0", files={"../evil.txt": "boom"})

    with pytest.raises(PackageIOError, match="escapes"):
        expand_archive(archive, tmp_path / "entry")
    assert not (tmp_path / "evil.txt").exists()


def test_create_archive_round_trip(tmp_path: Path, nuspec_factory: Callable[..., str]) -> None:
    """Test packing a directory and reading its descriptor back."""
    source = tmp_path / "src"
    (source / "lib").mkdir(parents=True)
    (source / "acme.nuspec").write_text(nuspec_factory("acme", "2.0.0"), encoding="utf-8")
    (source / "lib" / "acme.dll").write_text("build")

    archive_path = create_archive(source, tmp_path / "feed" / "acme.2.0.0.nupkg")

    assert read_archive_metadata(archive_path).version == "2.0.0"


def test_write_atomic_leaves_no_temp_files(tmp_path: Path) -> None:
    """Test atomic writes replace the destination and clean up."""
    destination = tmp_path / "file.bin"
    destination.write_bytes(b"old")

    write_atomic(destination, b"new")

    assert destination.read_bytes() == b"new"
    assert [p.name for p in tmp_path.iterdir()] == ["file.bin"]
