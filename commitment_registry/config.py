# commitment_registry/config.py

import os
import logging
from dataclasses import dataclass

from .errors import ConfigurationError
from .tree import DEFAULT_DEPTH, MAX_DEPTH


DEFAULT_DB_PATH = os.path.expanduser("~/.commitment_registry/registry.db")


@dataclass
class RegistryConfig:
    """Configuration for a registry instance.

    Attributes:
        depth: Tree depth (capacity 2**depth leaves)
        root_validity_window: Seconds a recorded root stays valid (0 = forever)
        db_path: sqlite file for the audit trail and state snapshots
        signing_key_path: Ed25519 key used to sign recorded roots ("" disables)
        log_level: Logging level name for the CLI
    """
    depth: int = DEFAULT_DEPTH
    root_validity_window: int = 3600
    db_path: str = DEFAULT_DB_PATH
    signing_key_path: str = ""
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Create config from environment variables."""
        try:
            config = cls(
                depth=int(os.environ.get("REGISTRY_TREE_DEPTH", str(DEFAULT_DEPTH))),
                root_validity_window=int(os.environ.get("REGISTRY_ROOT_VALIDITY_WINDOW", "3600")),
                db_path=os.environ.get("REGISTRY_DB_PATH", DEFAULT_DB_PATH),
                signing_key_path=os.environ.get("REGISTRY_SIGNING_KEY", ""),
                log_level=os.environ.get("REGISTRY_LOG_LEVEL", "WARNING").upper(),
            )
        except ValueError as e:
            raise ConfigurationError("Invalid numeric registry setting", cause=e) from e
        config.validate()
        return config

    def validate(self) -> None:
        if not 1 <= self.depth <= MAX_DEPTH:
            raise ConfigurationError(f"Tree depth must be in [1, {MAX_DEPTH}], got {self.depth}")
        if self.root_validity_window < 0:
            raise ConfigurationError(
                f"Root validity window must be non-negative, got {self.root_validity_window}"
            )
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError(f"Unknown log level: {self.log_level}")
