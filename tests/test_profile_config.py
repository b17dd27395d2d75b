"""
Profile and Configuration Tests
===============================

prefs.js parsing, profiles.ini discovery and environment configuration.
"""

from pathlib import Path

import pytest

from contracts import AccountNotFoundError, ProfileNotFoundError
from src.thunderbird_mcp.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    _profile_base_paths,
    find_default_profile,
    load_config,
)
from src.thunderbird_mcp.profile import Profile, parse_prefs


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "THUNDERBIRD_PROFILE",
        "THUNDERBIRD_MCP_HOST",
        "THUNDERBIRD_MCP_PORT",
        "THUNDERBIRD_MCP_ATTACHMENT_DIR",
        "THUNDERBIRD_MCP_OPEN_COMMAND",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestPrefs:
    """prefs.js parsing."""

    def test_parse_prefs_value_types(self):
        prefs = parse_prefs(
            "// comment\n"
            'user_pref("a.string", "Hello \\"quoted\\"");\n'
            'user_pref("a.number", 42);\n'
            'user_pref("a.flag", true);\n'
            'user_pref("broken", );\n'
            "not a pref\n"
        )

        assert prefs == {"a.string": 'Hello "quoted"', "a.number": 42, "a.flag": True}

    def test_accounts_and_identities(self, profile, profile_dir):
        [pop, local] = profile.accounts()

        assert pop.server.pretty_name == "alice on pop.example.com"
        assert pop.server.directory == profile_dir / "Mail" / "pop.example.com"
        assert local.server.pretty_name == "Local Folders"
        assert profile.default_account().key == "account1"

        account, identity = profile.find_identity("ALICE@example.com")
        assert (account.key, identity.key) == ("account1", "id1")
        assert profile.find_identity("nobody@example.com") is None

        with pytest.raises(AccountNotFoundError, match="Account not found: account9"):
            profile.get_account("account9")

    def test_imap_directory_fallback(self, tmp_path):
        (tmp_path / "prefs.js").write_text(
            'user_pref("mail.accountmanager.accounts", "account1");\n'
            'user_pref("mail.account.account1.server", "server1");\n'
            'user_pref("mail.server.server1.type", "imap");\n'
            'user_pref("mail.server.server1.hostname", "imap.example.com");\n',
            encoding="utf-8",
        )

        [account] = Profile(tmp_path).accounts()

        assert account.server.directory == tmp_path / "ImapMail" / "imap.example.com"
        assert account.identities == ()


class TestConfig:
    """Profile discovery and environment settings."""

    def test_find_default_profile_prefers_install(self, tmp_path):
        for name in ("first.default", "marked.default", "install.default"):
            (tmp_path / name).mkdir()
        (tmp_path / "profiles.ini").write_text(
            "[Profile0]\nName=first\nIsRelative=1\nPath=first.default\n\n"
            "[Profile1]\nName=marked\nIsRelative=1\nPath=marked.default\nDefault=1\n\n"
            "[Install4F96D1932A9F858E]\nDefault=install.default\nLocked=1\n",
            encoding="utf-8",
        )

        assert find_default_profile([tmp_path]) == tmp_path / "install.default"

    def test_find_default_profile_marked_default(self, tmp_path):
        for name in ("first.default", "marked.default"):
            (tmp_path / name).mkdir()
        (tmp_path / "profiles.ini").write_text(
            "[Profile0]\nPath=first.default\n\n[Profile1]\nPath=marked.default\nDefault=1\n",
            encoding="utf-8",
        )

        assert find_default_profile([tmp_path]) == tmp_path / "marked.default"

    def test_find_default_profile_missing(self, tmp_path):
        with pytest.raises(ProfileNotFoundError):
            find_default_profile([tmp_path / "nowhere"])

    def test_load_config_from_environment(self, clean_env, profile_dir, tmp_path):
        clean_env.setenv("THUNDERBIRD_PROFILE", str(profile_dir))
        clean_env.setenv("THUNDERBIRD_MCP_PORT", "9000")
        clean_env.setenv("THUNDERBIRD_MCP_ATTACHMENT_DIR", str(tmp_path / "out"))
        clean_env.setenv("THUNDERBIRD_MCP_OPEN_COMMAND", "/usr/bin/xdg-open")

        config = load_config()

        assert config.profile_path == profile_dir
        assert config.host == DEFAULT_HOST
        assert config.port == 9000
        assert config.event_dir == Path(tmp_path / "out" / "events")
        assert config.open_command == "/usr/bin/xdg-open"

    def test_load_config_defaults_and_errors(self, clean_env, profile_dir, tmp_path):
        clean_env.setenv("THUNDERBIRD_PROFILE", str(profile_dir))
        assert load_config().port == DEFAULT_PORT

        clean_env.setenv("THUNDERBIRD_MCP_PORT", "eighty")
        with pytest.raises(ValueError, match="THUNDERBIRD_MCP_PORT must be an integer"):
            load_config()

        clean_env.setenv("THUNDERBIRD_PROFILE", str(tmp_path / "missing"))
        with pytest.raises(ProfileNotFoundError, match="Profile directory not found"):
            load_config()

    def test_profile_base_paths_appdata(self, monkeypatch, tmp_path):
        monkeypatch.delenv("APPDATA", raising=False)
        paths = _profile_base_paths()

        assert all(path.is_absolute() for path in paths)
        assert Path("Thunderbird") not in paths

        monkeypatch.setenv("APPDATA", str(tmp_path))
        assert _profile_base_paths()[-1] == tmp_path / "Thunderbird"
