"""StoreConfig: project-local config for the shared trip store.

Default layout (all relative to the project root):

    tripstore.toml        # config
    .env                  # optional: TRIPSTORE_DIR=/shared/group/container
    .tripstore/
        trips.json        # canonical file (document backend)
        trips.json.lock   # coordination lock, never holds data

Every process that shares the store must resolve the same ``storage.dir``;
point TRIPSTORE_DIR at the common location to share across projects.

tripstore.toml example:

    [store]
    name = "my-trips"

    [storage]
    dir = ".tripstore"
    backend = "document"      # document | table
    # filename = "trips.json" # default: trips.json / trips.db by backend
    delete_policy = "hard"    # hard | soft

    [coordination]
    lock_timeout = 10.0       # seconds; 0 waits forever
    poll_interval = 0.05

    [watcher]
    enabled = true
    settle_delay = 0.05
    poll_interval = 1.0       # only used when inotify is unavailable

    [logging]
    level = "INFO"
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "tripstore.toml"
_DEFAULT_DIR = ".tripstore"
_DEFAULT_FILENAMES = {"document": "trips.json", "table": "trips.db"}
_BACKENDS = ("document", "table")
_DELETE_POLICIES = ("hard", "soft")
_DIR_ENV = "TRIPSTORE_DIR"


@dataclass
class StorageConfig:
    dir: str = _DEFAULT_DIR
    backend: str = "document"
    filename: str = ""
    delete_policy: str = "hard"


@dataclass
class CoordinationConfig:
    lock_timeout: float | None = 10.0   # None = block indefinitely
    poll_interval: float = 0.05


@dataclass
class WatcherConfig:
    enabled: bool = True
    settle_delay: float = 0.05
    poll_interval: float = 1.0


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class StoreConfig:
    """Resolved configuration for one shared store."""

    root: Path                      # directory that contains tripstore.toml
    name: str = ""
    storage: StorageConfig = field(default_factory=StorageConfig)
    coordination: CoordinationConfig = field(default_factory=CoordinationConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> Path:
        return self.root / self.storage.dir

    @property
    def store_path(self) -> Path:
        filename = self.storage.filename or _DEFAULT_FILENAMES[self.storage.backend]
        return self.data_dir / filename

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file (no external dependency)."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _choice(section: dict[str, Any], key: str, default: str, choices: tuple[str, ...]) -> str:
    value = str(section.get(key, default)).lower()
    if value not in choices:
        msg = f"{_CONFIG_FILENAME}: {key} must be one of {', '.join(choices)}, got {value!r}"
        raise ValueError(msg)
    return value


def load_config(root: Path | str | None = None) -> StoreConfig:
    """Load tripstore.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    env = _load_env(root_path)

    store_section = raw.get("store", {})
    st_section = raw.get("storage", {})
    co_section = raw.get("coordination", {})
    w_section = raw.get("watcher", {})
    log_section = raw.get("logging", {})

    # Shared-location override: process env first, then .env, then the file.
    data_dir = os.environ.get(_DIR_ENV) or env.get(_DIR_ENV) or str(st_section.get("dir", _DEFAULT_DIR))

    lock_timeout: float | None = float(co_section.get("lock_timeout", 10.0))
    if lock_timeout is not None and lock_timeout <= 0:
        lock_timeout = None

    return StoreConfig(
        root=root_path,
        name=store_section.get("name", root_path.name),
        storage=StorageConfig(
            dir=data_dir,
            backend=_choice(st_section, "backend", "document", _BACKENDS),
            filename=str(st_section.get("filename", "")),
            delete_policy=_choice(st_section, "delete_policy", "hard", _DELETE_POLICIES),
        ),
        coordination=CoordinationConfig(
            lock_timeout=lock_timeout,
            poll_interval=float(co_section.get("poll_interval", 0.05)),
        ),
        watcher=WatcherConfig(
            enabled=bool(w_section.get("enabled", True)),
            settle_delay=float(w_section.get("settle_delay", 0.05)),
            poll_interval=float(w_section.get("poll_interval", 1.0)),
        ),
        logging=LoggingConfig(
            level=str(log_section.get("level", "INFO")).upper(),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for tripstore.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None, backend: str = "document") -> Path:
    """Write a default tripstore.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"{_CONFIG_FILENAME} already exists at {config_path}"
        raise FileExistsError(msg)
    if backend not in _BACKENDS:
        msg = f"unknown backend {backend!r}"
        raise ValueError(msg)

    project_name = name or root.name
    content = f"""\
[store]
name = "{project_name}"

[storage]
# dir = ".tripstore"        # or set TRIPSTORE_DIR (env / .env) to a shared location
backend = "{backend}"       # document | table
# filename = ""             # default: trips.json (document) / trips.db (table)
# delete_policy = "hard"    # hard | soft (soft keeps the trip, flagged deleted)

# [coordination]
# lock_timeout = 10.0       # seconds to wait for the cross-process lock; 0 = forever
# poll_interval = 0.05

# [watcher]
# enabled = true
# settle_delay = 0.05       # coalesce bursts of change events
# poll_interval = 1.0       # fallback when inotify is unavailable

# [logging]
# level = "INFO"
"""
    root.mkdir(parents=True, exist_ok=True)
    config_path.write_text(content)
    return config_path
