"""Unit tests for cached and installed package validation."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict

from vellum.packaging.package import load_cached_package, load_installed_plugin
from vellum.utils.exceptions import BinaryMissingError, MetadataInvalidError

FileWriter = Callable[[Path, Dict[str, str]], None]


def test_load_cached_package(tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]) -> None:
    """Test validating an expanded plugin entry."""
    file_writer(tmp_path, {
        "acme.widgets.nuspec": nuspec_factory("acme.widgets", "1.2.0"),
        "lib/net462/acme.widgets.dll": "",
    })

    result = load_cached_package(tmp_path, expected_id="ACME.Widgets")

    assert result.ok
    package = result.value
    assert package.id == "acme.widgets"
    assert package.version == "1.2.0"
    assert package.descriptor_path == tmp_path / "acme.widgets.nuspec"
    assert package.archive_path == tmp_path / "acme.widgets.1.2.0.nupkg"
    assert package.binary_directory == tmp_path / "lib" / "net462"


def test_load_cached_core_package(tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]) -> None:
    """Test that the core package needs no framework binary."""
    file_writer(tmp_path, {"SS.CMS.nuspec": nuspec_factory("SS.CMS", "6.9.0")})

    result = load_cached_package(tmp_path, expected_id="SS.CMS")

    assert result.ok
    assert result.value.binary_directory is None


def test_load_cached_package_id_mismatch(
        tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]
) -> None:
    """Test rejecting a descriptor that names another package."""
    file_writer(tmp_path, {
        "acme.nuspec": nuspec_factory("acme.gadgets", "1.0.0"),
        "lib/acme.gadgets.dll": "",
    })

    result = load_cached_package(tmp_path, expected_id="acme.widgets")

    assert isinstance(result.error, MetadataInvalidError)
    assert "does not match" in result.message


def test_load_cached_package_without_descriptor(tmp_path: Path) -> None:
    """Test an entry with no descriptor at all."""
    result = load_cached_package(tmp_path, expected_id="acme")

    assert isinstance(result.error, MetadataInvalidError)


def test_load_cached_package_missing_binary(
        tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]
) -> None:
    """Test an entry whose binary is missing."""
    file_writer(tmp_path, {"acme.nuspec": nuspec_factory("acme", "1.0.0")})

    result = load_cached_package(tmp_path, expected_id="acme")

    assert isinstance(result.error, BinaryMissingError)


def test_load_installed_plugin(tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]) -> None:
    """Test validating an installed plugin directory."""
    plugin_dir = tmp_path / "acme.widgets"
    file_writer(plugin_dir, {
        "acme.widgets.nuspec": nuspec_factory("acme.widgets", "1.2.0"),
        "Bin/acme.widgets.dll": "",
    })

    result = load_installed_plugin(plugin_dir)

    assert result.ok
    assert result.value.version == "1.2.0"
    assert result.value.binary_path == plugin_dir / "Bin" / "acme.widgets.dll"


def test_load_installed_plugin_missing_binary(
        tmp_path: Path, file_writer: FileWriter, nuspec_factory: Callable[..., str]
) -> None:
    """Test a plugin directory without its binary."""
    plugin_dir = tmp_path / "acme.widgets"
    file_writer(plugin_dir, {"acme.widgets.nuspec": nuspec_factory("acme.widgets", "1.2.0")})

    result = load_installed_plugin(plugin_dir)

    assert isinstance(result.error, BinaryMissingError)


def test_load_installed_plugin_missing_descriptor(tmp_path: Path) -> None:
    """Test a plugin directory without its descriptor."""
    plugin_dir = tmp_path / "acme.widgets"
    (plugin_dir / "Bin").mkdir(parents=True)

    result = load_installed_plugin(plugin_dir)

    assert isinstance(result.error, MetadataInvalidError)
