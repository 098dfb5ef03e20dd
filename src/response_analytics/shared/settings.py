from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _normalize_path(value: str | Path | None) -> Path:
    if value is None:
        return Path.cwd()
    return Path(value)


@lru_cache(maxsize=None)
def find_repo_root(start_path: str | Path | None = None) -> Path:
    start = _normalize_path(start_path).resolve()
    for candidate in (start, *start.parents):
        if (candidate / 'pyproject.toml').exists() or (candidate / '.git').exists():
            return candidate
    return start


def resolve_env_files(*, from_path: str | Path | None = None) -> list[str]:
    """Return the `.env` files that exist for the repository containing `from_path`.

    The repository `.env` is read first, then `config/.env` so report-specific
    values can shadow shared ones.
    """
    repo_root = find_repo_root(from_path)
    env_files = [repo_root / '.env', repo_root / 'config' / '.env']
    return [str(path) for path in env_files if path.exists()]


def build_settings_config(
    *,
    from_path: str | Path | None = None,
) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_file=resolve_env_files(from_path=from_path),
        env_file_encoding='utf-8',
        extra='ignore',
    )


class RepoSettingsBase(BaseSettings):
    model_config = SettingsConfigDict(
        env_file_encoding='utf-8',
        extra='ignore',
    )
