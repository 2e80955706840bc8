from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from ..errors import ConfigError

# Loaded in order when a service declares no `envFiles`; missing files are skipped.
DEFAULT_ENV_FILES = [".env.development", ".env.local"]


def _strip_inline_comment(value: str) -> str:
    idx = value.find("#")
    return value[:idx].strip() if idx != -1 else value


def parse_env_content(content: str) -> Dict[str, str]:
    """Parse dotenv text: `KEY=VALUE`, `#` comments, single/double quoted values.

    `#` inside a closed quoted value is kept; in unquoted values it starts a comment.
    """
    env: Dict[str, str] = {}
    for raw in str(content or "").split("\n"):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if value[:1] in {'"', "'"}:
            closing = value.find(value[0], 1)
            value = value[1:closing] if closing != -1 else _strip_inline_comment(value)
        else:
            value = _strip_inline_comment(value)
        if key:
            env[key] = value
    return env


def parse_env_file(path: Path) -> Dict[str, str]:
    p = Path(path)
    try:
        return parse_env_content(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Environment file not found: {p}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read environment file: {e}") from e


def load_env_files(paths: List[Path], *, skip_missing: bool = False) -> Dict[str, str]:
    """Merge env files in order; later files override earlier ones."""
    env: Dict[str, str] = {}
    for p in paths:
        if skip_missing and not Path(p).is_file():
            continue
        env.update(parse_env_file(p))
    return env
