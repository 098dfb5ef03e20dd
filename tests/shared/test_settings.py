from __future__ import annotations

from pathlib import Path

from response_analytics.shared.settings import (
    build_settings_config,
    find_repo_root,
    resolve_env_files,
)


def test_find_repo_root_walks_up_to_pyproject(tmp_path: Path) -> None:
    (tmp_path / 'pyproject.toml').write_text('[project]\nname = "x"\n')
    nested = tmp_path / 'src' / 'pkg'
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == tmp_path.resolve()


def test_resolve_env_files_returns_existing_files_in_order(tmp_path: Path) -> None:
    (tmp_path / 'pyproject.toml').write_text('')
    (tmp_path / 'config').mkdir()
    (tmp_path / '.env').write_text('DATABASE_URL=postgresql://root\n')
    (tmp_path / 'config' / '.env').write_text('DB_POOL_MAX_SIZE=2\n')

    env_files = resolve_env_files(from_path=tmp_path)

    assert env_files == [
        str(tmp_path.resolve() / '.env'),
        str(tmp_path.resolve() / 'config' / '.env'),
    ]


def test_build_settings_config_reads_repo_env_files(tmp_path: Path) -> None:
    (tmp_path / 'pyproject.toml').write_text('')
    (tmp_path / '.env').write_text('DATABASE_URL=postgresql://root\n')

    config = build_settings_config(from_path=tmp_path)

    assert config['env_file'] == [str(tmp_path.resolve() / '.env')]
    assert config['extra'] == 'ignore'
    assert 'env_prefix' not in config
