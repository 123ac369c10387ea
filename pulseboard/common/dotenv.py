from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional


def _is_allowed_key(key: str, allow_prefixes: Optional[tuple[str, ...]]) -> bool:
    if allow_prefixes is None:
        return True
    return any(key.startswith(p) for p in allow_prefixes)


def _parse_line(raw: str) -> Optional[tuple[str, str]]:
    line = raw.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].strip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def load_dotenv(
    path: str | Path,
    *,
    override: bool = False,
    allow_prefixes: Optional[Iterable[str]] = None,
) -> bool:
    """Load `KEY=VALUE` lines from a .env file into os.environ.

    Existing variables win unless override=True. When allow_prefixes is given,
    only keys starting with one of them are loaded.

    Returns True if the file existed and was processed.
    """
    p = Path(path)
    if not p.is_file():
        return False

    prefixes = tuple(allow_prefixes) if allow_prefixes is not None else None
    for raw in p.read_text(encoding="utf-8").splitlines():
        parsed = _parse_line(raw)
        if parsed is None:
            continue
        key, value = parsed
        if not _is_allowed_key(key, prefixes):
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value

    return True


def load_dotenv_auto(
    *,
    override: bool = False,
    allow_prefixes: Optional[Iterable[str]] = None,
) -> Optional[Path]:
    """Load a .env file unless running in production.

    Lookup order: PULSEBOARD_ENV_FILE, ./.env, then the repo root .env.
    Returns the loaded path, or None.
    """
    env = os.getenv("PULSEBOARD_ENV") or os.getenv("NODE_ENV") or "dev"
    if env.strip().lower() == "production":
        return None

    candidates: list[Path] = []
    explicit = os.getenv("PULSEBOARD_ENV_FILE")
    if explicit:
        candidates.append(Path(explicit))
    candidates.append(Path.cwd() / ".env")
    # <repo>/pulseboard/common/dotenv.py -> parents[2] is <repo>
    candidates.append(Path(__file__).resolve().parents[2] / ".env")

    for candidate in candidates:
        if load_dotenv(candidate, override=override, allow_prefixes=allow_prefixes):
            return candidate
    return None
