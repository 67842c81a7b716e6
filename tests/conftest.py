"""Pytest configuration and fixtures for Vellum tests."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest
import yaml

from vellum.core.config_manager import ConfigManager
from vellum.packaging.feed import FeedClient
from vellum.packaging.metadata import PackageMetadata
from vellum.packaging.result import Result
from vellum.utils.exceptions import PackageNotFoundError

NUSPEC_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>{id}</id>
    <version>{version}</version>
    <title>{title}</title>
    <authors>Acme</authors>
    <description>Test package</description>
    <releaseNotes>Initial release</releaseNotes>
    <published>2024-03-01T12:00:00Z</published>
  </metadata>
</package>
"""

WEB_CONFIG_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<configuration>
  <appSettings>
{settings}
  </appSettings>
  <system.web>
    <compilation debug="false" />
  </system.web>
</configuration>
"""


def nuspec(package_id: str, version: str, title: Optional[str] = None) -> str:
    """Render a descriptor document."""
    return NUSPEC_TEMPLATE.format(id=package_id, version=version, title=title or package_id)


def web_config(settings: Dict[str, str]) -> str:
    """Render a Web.config with the given appSettings."""
    lines = "\n".join(f'    <add key="{key}" value="{value}" />' for key, value in settings.items())
    return WEB_CONFIG_TEMPLATE.format(settings=lines)


def build_archive(
        package_id: str,
        version: str,
        files: Optional[Dict[str, str]] = None,
        descriptor: Optional[str] = None
) -> bytes:
    """Build a package archive in memory.

    Args:
        package_id: Package id
        version: Package version
        files: Archive member name -> text content
        descriptor: Descriptor text; a valid one is generated when omitted
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{package_id}.nuspec", descriptor if descriptor is not None else nuspec(package_id, version))
        archive.writestr("[Content_Types].xml", "<Types />")
        archive.writestr("_rels/.rels", "<Relationships />")
        for name, content in (files or {}).items():
            archive.writestr(name, content)
    return buffer.getvalue()


class FakeFeed(FeedClient):
    """In-memory feed that counts calls."""

    def __init__(self, archives: Optional[Dict[tuple, bytes]] = None) -> None:
        self.archives: Dict[tuple, bytes] = dict(archives or {})
        self.fetch_calls = 0
        self.find_calls = 0

    def add(self, package_id: str, version: str, archive: bytes) -> None:
        self.archives[(package_id, version)] = archive

    def find_latest(self, package_id: str) -> Result[PackageMetadata]:
        self.find_calls += 1
        versions = [v for (pid, v) in self.archives if pid == package_id]
        if not versions:
            return Result.failure(PackageNotFoundError(f"{package_id} not found", package_id=package_id))
        return Result.success(PackageMetadata(id=package_id, version=max(versions)))

    def fetch_archive(self, package_id: str, version: str) -> Result[bytes]:
        self.fetch_calls += 1
        archive = self.archives.get((package_id, version))
        if archive is None:
            return Result.failure(PackageNotFoundError(
                f"{package_id} {version} not found", package_id=package_id, version=version
            ))
        return Result.success(archive)


@pytest.fixture
def archive_factory() -> Callable[..., bytes]:
    """Factory for in-memory package archives."""
    return build_archive


@pytest.fixture
def fake_feed() -> FakeFeed:
    """An empty in-memory feed."""
    return FakeFeed()


@pytest.fixture
def plugin_archive() -> bytes:
    """Archive of acme.widgets 1.2.0 with content and two framework builds."""
    return build_archive(
        "acme.widgets",
        "1.2.0",
        files={
            "content/index.html": "<h1>widgets</h1>",
            "content/css/site.css": "body {}",
            "lib/net40/acme.widgets.dll": "net40 build",
            "lib/net462/acme.widgets.dll": "net462 build",
        },
    )


@pytest.fixture
def core_archive() -> bytes:
    """Archive of the core platform package SS.CMS 6.9.0."""
    return build_archive(
        "SS.CMS",
        "6.9.0",
        files={
            "Web.config": web_config({
                "IsProtectData": "false",
                "DatabaseType": "",
                "ConnectionString": "",
                "AdminDirectory": "SiteServer",
                "SecretKey": "",
                "NewSetting": "shipped",
            }),
            "SiteFiles/assets/app.js": "console.log('v6.9');",
            "SiteServer/login.html": "<form></form>",
            "Bin/SiteServer.CMS.dll": "core build",
        },
    )


@pytest.fixture
def live_root(tmp_path: Path) -> Path:
    """A running deployment with its own Web.config."""
    root = tmp_path / "wwwroot"
    root.mkdir()
    (root / "Web.config").write_text(web_config({
        "IsProtectData": "true",
        "DatabaseType": "SqlServer",
        "ConnectionString": "server=db;database=cms",
        "AdminDirectory": "SiteServer",
        "SecretKey": "s3cret",
    }), encoding="utf-8")
    return root


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary configuration file for testing."""
    test_config = {
        "app": {"name": "Vellum Test", "environment": "testing"},
        "logging": {
            "level": "DEBUG",
            "format": "text",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "DEBUG"},
        },
        "packaging": {
            "packages_path": str(tmp_path / "packages"),
            "channel": "nightly",
        },
        "deployment": {
            "application_root": str(tmp_path / "wwwroot"),
        },
    }
    config_path = tmp_path / "vellum.yaml"
    config_path.write_text(yaml.dump(test_config), encoding="utf-8")
    yield config_path


@pytest.fixture
def config_manager(temp_config_file: Path) -> Generator[ConfigManager, None, None]:
    """Create a ConfigManager instance for testing."""
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()
    yield manager
    manager.shutdown()


def write_files(root: Path, files: Dict[str, str]) -> None:
    """Write text files below a directory."""
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def nuspec_factory() -> Callable[..., str]:
    """Factory for descriptor documents."""
    return nuspec


@pytest.fixture
def web_config_factory() -> Callable[[Dict[str, str]], str]:
    """Factory for Web.config documents."""
    return web_config


@pytest.fixture
def file_writer() -> Callable[[Path, Dict[str, str]], None]:
    """Helper writing a tree of text files."""
    return write_files
