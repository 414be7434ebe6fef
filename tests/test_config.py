"""Tests for tripstore.config: defaults, tripstore.toml, TRIPSTORE_DIR overrides."""

from __future__ import annotations

import pytest

from tripstore.config import init_config, load_config


@pytest.fixture(autouse=True)
def _no_env_dir(monkeypatch):
    monkeypatch.delenv("TRIPSTORE_DIR", raising=False)


def test_defaults_without_file(tmp_path):
    cfg = load_config(tmp_path)

    assert cfg.root == tmp_path
    assert cfg.name == tmp_path.name
    assert cfg.storage.backend == "document"
    assert cfg.storage.delete_policy == "hard"
    assert cfg.store_path == tmp_path / ".tripstore" / "trips.json"
    assert cfg.coordination.lock_timeout == 10.0
    assert cfg.watcher.enabled is True
    assert cfg.logging.level == "INFO"


def test_values_from_file(tmp_path):
    (tmp_path / "tripstore.toml").write_text(
        """
[store]
name = "crew-trips"

[storage]
dir = "data"
backend = "table"
delete_policy = "SOFT"

[coordination]
lock_timeout = 2.5
poll_interval = 0.01

[watcher]
enabled = false
settle_delay = 0.2

[logging]
level = "debug"
"""
    )

    cfg = load_config(tmp_path)

    assert cfg.name == "crew-trips"
    assert cfg.store_path == tmp_path / "data" / "trips.db"
    assert cfg.storage.delete_policy == "soft"
    assert cfg.coordination.lock_timeout == 2.5
    assert cfg.coordination.poll_interval == 0.01
    assert cfg.watcher.enabled is False
    assert cfg.watcher.settle_delay == 0.2
    assert cfg.logging.level == "DEBUG"


def test_explicit_filename(tmp_path):
    (tmp_path / "tripstore.toml").write_text('[storage]\nfilename = "shared.json"\n')

    assert load_config(tmp_path).store_path.name == "shared.json"


def test_zero_lock_timeout_waits_forever(tmp_path):
    (tmp_path / "tripstore.toml").write_text("[coordination]\nlock_timeout = 0\n")

    assert load_config(tmp_path).coordination.lock_timeout is None


def test_invalid_backend(tmp_path):
    (tmp_path / "tripstore.toml").write_text('[storage]\nbackend = "csv"\n')

    with pytest.raises(ValueError, match="backend must be one of"):
        load_config(tmp_path)


def test_env_file_overrides_dir(tmp_path):
    (tmp_path / "tripstore.toml").write_text('[storage]\ndir = "local"\n')
    shared = tmp_path / "group"
    (tmp_path / ".env").write_text(f'# shared container\nTRIPSTORE_DIR="{shared}"\n')

    assert load_config(tmp_path).data_dir == shared


def test_process_env_beats_env_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("TRIPSTORE_DIR=/from/dotenv\n")
    monkeypatch.setenv("TRIPSTORE_DIR", str(tmp_path / "from-env"))

    assert load_config(tmp_path).data_dir == tmp_path / "from-env"


def test_finds_root_from_subdirectory(tmp_path, monkeypatch):
    init_config(tmp_path, name="rooted")
    sub = tmp_path / "a" / "b"
    sub.mkdir(parents=True)
    monkeypatch.chdir(sub)

    cfg = load_config()

    assert cfg.root == tmp_path
    assert cfg.name == "rooted"


class TestInit:
    def test_writes_loadable_config(self, tmp_path):
        path = init_config(tmp_path, name="demo", backend="table")

        cfg = load_config(tmp_path)

        assert path == tmp_path / "tripstore.toml"
        assert cfg.name == "demo"
        assert cfg.storage.backend == "table"
        assert cfg.store_path.name == "trips.db"

    def test_refuses_to_overwrite(self, tmp_path):
        init_config(tmp_path)

        with pytest.raises(FileExistsError):
            init_config(tmp_path)

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError):
            init_config(tmp_path, backend="csv")

    def test_ensure_dirs(self, tmp_path):
        cfg = load_config(tmp_path)
        cfg.ensure_dirs()

        assert cfg.data_dir.is_dir()
