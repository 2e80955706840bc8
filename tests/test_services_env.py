from __future__ import annotations

from pathlib import Path

import pytest

from denvig.errors import ConfigError
from denvig.services.env import load_env_files, parse_env_content


@pytest.mark.basic
def test_parse_env_content() -> None:
    env = parse_env_content(
        "\n".join(
            [
                "# comment",
                "",
                "PLAIN=value",
                "SPACED = padded ",
                'DOUBLE="has # hash"',
                "SINGLE='single quoted'",
                "TRAILING=abc # trailing comment",
                "EMPTY=",
                "NOEQUALS",
                "URL=postgres://u:p@localhost:5432/db?x=1",
            ]
        )
    )
    assert env == {
        "PLAIN": "value",
        "SPACED": "padded",
        "DOUBLE": "has # hash",
        "SINGLE": "single quoted",
        "TRAILING": "abc",
        "EMPTY": "",
        "URL": "postgres://u:p@localhost:5432/db?x=1",
    }


@pytest.mark.basic
def test_load_env_files_later_overrides_earlier(tmp_path: Path) -> None:
    (tmp_path / ".env.development").write_text("A=1\nB=1\n", encoding="utf-8")
    (tmp_path / ".env.local").write_text("B=2\n", encoding="utf-8")
    env = load_env_files([tmp_path / ".env.development", tmp_path / ".env.local"])
    assert env == {"A": "1", "B": "2"}


@pytest.mark.basic
def test_missing_env_file(tmp_path: Path) -> None:
    assert load_env_files([tmp_path / "nope"], skip_missing=True) == {}
    with pytest.raises(ConfigError, match="not found"):
        load_env_files([tmp_path / "nope"])
