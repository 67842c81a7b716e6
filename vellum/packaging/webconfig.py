"""Carry live settings forward into a new platform configuration file.

The configuration schema belongs to the CMS. This module only knows the
handful of ``appSettings`` keys that must survive a core upgrade.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Union

import pydantic

from vellum.packaging.archive import write_atomic
from vellum.utils.exceptions import ConfigFileMissingError, PackageIOError

APP_SETTINGS = "appSettings"

# LiveSettings field -> appSettings key
SETTING_KEYS: Dict[str, str] = {
    "is_protect_data": "IsProtectData",
    "database_type": "DatabaseType",
    "connection_string": "ConnectionString",
    "admin_directory": "AdminDirectory",
    "secret_key": "SecretKey",
}


class LiveSettings(pydantic.BaseModel):
    """Settings of the running deployment that an upgrade must keep."""

    is_protect_data: bool = False
    database_type: str = ""
    connection_string: str = ""
    admin_directory: str = ""
    secret_key: str = ""

    def as_app_settings(self) -> Dict[str, str]:
        """Render the settings as ``appSettings`` key/value strings."""
        values = self.model_dump()
        return {
            key: ("true" if values[field] else "false") if field == "is_protect_data" else values[field]
            for field, key in SETTING_KEYS.items()
        }


def _load(path: Path) -> ET.ElementTree:
    if not path.is_file():
        raise ConfigFileMissingError(f"Configuration file not found: {path}", file_path=str(path))
    try:
        return ET.parse(path)
    except (ET.ParseError, OSError) as e:
        raise PackageIOError(f"Configuration file {path} could not be read: {e}", file_path=str(path)) from e


def read_live_settings(web_config_path: Union[str, Path]) -> LiveSettings:
    """Read the carried-forward settings from a configuration file.

    Missing keys keep their defaults.

    Raises:
        ConfigFileMissingError: If the file does not exist
        PackageIOError: If the file is not readable XML
    """
    tree = _load(Path(web_config_path))
    app_settings = tree.getroot().find(APP_SETTINGS)

    found: Dict[str, str] = {}
    if app_settings is not None:
        for add in app_settings.findall("add"):
            found[add.get("key", "")] = add.get("value", "")

    values = {}
    for field, key in SETTING_KEYS.items():
        if key in found:
            value = found[key]
            values[field] = value.strip().lower() == "true" if field == "is_protect_data" else value
    return LiveSettings(**values)


def merge_live_settings(package_config_path: Union[str, Path], settings: LiveSettings) -> None:
    """Upsert the live settings into a package's configuration file in place.

    Other elements and attributes are left untouched.

    Raises:
        ConfigFileMissingError: If the file does not exist
        PackageIOError: If the file cannot be read or written
    """
    path = Path(package_config_path)
    tree = _load(path)
    root = tree.getroot()

    app_settings = root.find(APP_SETTINGS)
    if app_settings is None:
        app_settings = ET.SubElement(root, APP_SETTINGS)

    existing = {add.get("key"): add for add in app_settings.findall("add")}
    for key, value in settings.as_app_settings().items():
        element = existing.get(key)
        if element is None:
            element = ET.SubElement(app_settings, "add", {"key": key})
        element.set("value", value)

    write_atomic(path, ET.tostring(root, encoding="utf-8", xml_declaration=True))
