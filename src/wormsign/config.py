"""Global configuration — XDG config file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from wormsign.scanner.engine import ScanConfig, default_workers

_TRUTHY = {"1", "true", "yes", "on"}


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "wormsign"
    return Path.home() / ".config" / "wormsign"


@dataclass
class WormsignConfig:
    """Application-wide configuration."""

    config_dir: Path = field(default_factory=_default_config_dir)
    workers: int = field(default_factory=default_workers)
    include_node_modules: bool = False
    ioc_file: Path | None = None

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.yaml"

    @classmethod
    def load(cls) -> WormsignConfig:
        """Load config from the YAML file, then environment variables."""
        config = cls()

        if config.config_file.is_file():
            config._apply_file(config.config_file)

        env_workers = os.environ.get("WORMSIGN_WORKERS")
        if env_workers:
            config.workers = int(env_workers)

        env_node_modules = os.environ.get("WORMSIGN_INCLUDE_NODE_MODULES")
        if env_node_modules:
            config.include_node_modules = env_node_modules.lower() in _TRUTHY

        env_ioc = os.environ.get("WORMSIGN_IOC_FILE")
        if env_ioc:
            config.ioc_file = Path(env_ioc)

        if config.workers < 1:
            raise ValueError("workers must be at least 1")
        return config

    def _apply_file(self, path: Path) -> None:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if data is None:
            return
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML mapping")

        if "workers" in data:
            self.workers = int(data["workers"])
        if "include_node_modules" in data:
            self.include_node_modules = bool(data["include_node_modules"])
        if data.get("ioc_file"):
            # Relative IOC paths are resolved against the config directory
            self.ioc_file = self.config_dir / Path(data["ioc_file"]).expanduser()

    def to_scan_config(self, root: str | Path) -> ScanConfig:
        return ScanConfig(
            root=Path(root),
            include_node_modules=self.include_node_modules,
            workers=self.workers,
        )
