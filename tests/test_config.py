from __future__ import annotations

import sys
from pathlib import Path

import pytest

from core.config import AppSettings, get_user_config_dir, write_user_env_vars


def test_write_user_env_vars_merges_and_sorts(tmp_path: Path) -> None:
    env_path = tmp_path / "cfg" / ".env"
    env_path.parent.mkdir()
    env_path.write_text('# old\nNETOPS_MERAKI_ORG_ID="123"\nNETOPS_AI_MODEL=gpt-4o\n', encoding="utf-8")

    written = write_user_env_vars(
        {"NETOPS_AI_MODEL": "gpt-4o-mini", "NETOPS_MERAKI_API_KEY": "k", "NETOPS_WEBEX_SPACE_ID": None},  # type: ignore[dict-item]
        env_path=env_path,
    )

    assert written == env_path
    lines = env_path.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("#")
    assert lines[1:] == [
        "NETOPS_AI_MODEL=gpt-4o-mini",
        "NETOPS_MERAKI_API_KEY=k",
        "NETOPS_MERAKI_ORG_ID=123",
    ]


def test_write_user_env_vars_creates_the_directory(tmp_path: Path) -> None:
    env_path = tmp_path / "new" / "dir" / ".env"

    write_user_env_vars({"NETOPS_LOG_LEVEL": "DEBUG"}, env_path=env_path)

    assert "NETOPS_LOG_LEVEL=DEBUG" in env_path.read_text(encoding="utf-8")


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NETOPS_MAX_CHAIN_DEPTH", "3")
    monkeypatch.setenv("NETOPS_MERAKI_ORG_ID", "org-9")

    settings = AppSettings(_env_file=None)

    assert settings.max_chain_depth == 3
    assert settings.meraki_org_id == "org-9"
    assert settings.max_retries == 3
    assert settings.relay_max_message_length == 7400


def test_settings_reject_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        AppSettings(_env_file=None, max_retries=-1)


@pytest.mark.skipif(sys.platform.startswith("win") or sys.platform == "darwin", reason="XDG layout")
def test_user_config_dir_follows_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    assert get_user_config_dir() == tmp_path / "netops-assistant"
