"""
Server Configuration
====================

Runtime settings for the HTTP endpoint and the Thunderbird profile it serves.
Values come from environment variables; the profile falls back to the
default one found through profiles.ini.
"""

import configparser
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from contracts import ProfileNotFoundError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_ATTACHMENT_DIR = Path("/tmp/thunderbird-mcp")


@dataclass(frozen=True)
class ServerConfig:
    """Settings held for the lifetime of the server process."""

    profile_path: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    attachment_dir: Path = DEFAULT_ATTACHMENT_DIR
    open_command: str | None = None

    @property
    def event_dir(self) -> Path:
        return self.attachment_dir / "events"


def _profile_base_paths() -> list[Path]:
    home = Path.home()
    paths = [
        home / ".thunderbird",
        home / "snap" / "thunderbird" / "common" / ".thunderbird",
        home / ".var" / "app" / "org.mozilla.Thunderbird" / ".thunderbird",
        home / "Library" / "Thunderbird",
    ]
    appdata = os.environ.get("APPDATA")
    if appdata:
        paths.append(Path(appdata) / "Thunderbird")
    return paths


def find_default_profile(base_paths: list[Path] | None = None) -> Path:
    """
    Locate the default Thunderbird profile.

    Reads profiles.ini in each base path. An [Install*] section's Default
    wins over a [Profile*] section marked Default=1, which wins over the
    first profile listed.

    ERRORS:
    - ProfileNotFoundError: No profiles.ini names an existing directory
    """
    for base_path in base_paths or _profile_base_paths():
        profiles_ini = base_path / "profiles.ini"
        if not profiles_ini.is_file():
            continue

        parser = configparser.ConfigParser()
        try:
            parser.read(profiles_ini)
        except configparser.Error:
            continue

        installs: list[Path] = []
        defaults: list[Path] = []
        others: list[Path] = []
        for section in parser.sections():
            if section.startswith("Install") and parser.has_option(section, "Default"):
                installs.append(base_path / parser.get(section, "Default"))
            elif section.startswith("Profile") and parser.has_option(section, "Path"):
                path_value = parser.get(section, "Path")
                is_relative = parser.getboolean(section, "IsRelative", fallback=True)
                path = base_path / path_value if is_relative else Path(path_value)
                if parser.getboolean(section, "Default", fallback=False):
                    defaults.append(path)
                else:
                    others.append(path)

        for path in installs + defaults + others:
            if path.is_dir():
                return path

    raise ProfileNotFoundError("No Thunderbird profile found; set THUNDERBIRD_PROFILE")


def _detect_open_command() -> str | None:
    for name in ("thunderbird", "thunderbird-esr"):
        found = shutil.which(name)
        if found:
            return found
    return None


def load_config() -> ServerConfig:
    """
    Build the configuration from the environment.

    THUNDERBIRD_PROFILE            profile directory (else auto-detected)
    THUNDERBIRD_MCP_HOST           bind address (default 127.0.0.1)
    THUNDERBIRD_MCP_PORT           bind port (default 8765)
    THUNDERBIRD_MCP_ATTACHMENT_DIR saved attachments and event files
    THUNDERBIRD_MCP_OPEN_COMMAND   program that opens .ics files for review
    """
    profile = os.environ.get("THUNDERBIRD_PROFILE")
    if profile:
        profile_path = Path(profile).expanduser()
        if not profile_path.is_dir():
            raise ProfileNotFoundError(f"Profile directory not found: {profile_path}")
    else:
        profile_path = find_default_profile()

    try:
        port = int(os.environ.get("THUNDERBIRD_MCP_PORT", DEFAULT_PORT))
    except ValueError as e:
        raise ValueError("THUNDERBIRD_MCP_PORT must be an integer") from e

    return ServerConfig(
        profile_path=profile_path,
        host=os.environ.get("THUNDERBIRD_MCP_HOST", DEFAULT_HOST),
        port=port,
        attachment_dir=Path(
            os.environ.get("THUNDERBIRD_MCP_ATTACHMENT_DIR", DEFAULT_ATTACHMENT_DIR)
        ),
        open_command=os.environ.get("THUNDERBIRD_MCP_OPEN_COMMAND") or _detect_open_command(),
    )
