"""Workflow configuration.

Settings are read from the environment, with a ``.env`` file in the current
working directory loaded first (values already in the environment win).

Recognised variables:

    NAMADA_RPC_URL       CometBFT RPC endpoint
    NAMADA_INDEXER_URL   indexer REST endpoint
    NAMADA_BRIDGE_URL    SDK bridge endpoint
    NAMADA_CHAIN_ID      chain id the transactions are built for
    NAMADA_WALLET_DIR    directory holding wallet.toml
    NAMADA_MASP_DIR      directory for shielded context data
    NAMADA_TIMEOUT       network timeout in seconds
    NAMADA_NATIVE_TOKEN  native token address (queried when unset)
    NAMADA_WAIT_FOR_COMMIT  wait for each broadcast tx to be applied
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .types import InvalidInputError


DEFAULT_RPC_URL = "https://rpc.knowable.run:443"
DEFAULT_INDEXER_URL = "https://indexer.knowable.run"
DEFAULT_BRIDGE_URL = "http://127.0.0.1:3333"
DEFAULT_CHAIN_ID = "housefire-reduce.e51ecf4264fc3"
DEFAULT_WALLET_DIR = "./sdk-wallet"
DEFAULT_MASP_DIR = "./masp"
DEFAULT_TIMEOUT = 60.0

ENV_PREFIX = "NAMADA_"


@dataclass(frozen=True)
class WorkflowConfig:
    """Explicit configuration handed to the wallet and its collaborators."""

    rpc_url: str = DEFAULT_RPC_URL
    indexer_url: str = DEFAULT_INDEXER_URL
    bridge_url: str = DEFAULT_BRIDGE_URL
    chain_id: str = DEFAULT_CHAIN_ID
    wallet_dir: Path = Path(DEFAULT_WALLET_DIR)
    masp_dir: Path = Path(DEFAULT_MASP_DIR)
    timeout: float = DEFAULT_TIMEOUT
    native_token: str | None = None
    wait_for_commit: bool = False

    def __post_init__(self) -> None:
        for name in ("rpc_url", "indexer_url", "bridge_url"):
            url = getattr(self, name)
            if not validate_url(url):
                raise InvalidInputError(f"Invalid {name}: {url!r}")
            # Normalize URL by removing trailing slashes
            object.__setattr__(self, name, url.rstrip("/"))
        if not self.chain_id:
            raise InvalidInputError("Chain id must not be empty")
        if self.timeout <= 0:
            raise InvalidInputError(f"Timeout must be positive: {self.timeout}")
        object.__setattr__(self, "wallet_dir", Path(self.wallet_dir))
        object.__setattr__(self, "masp_dir", Path(self.masp_dir))

    @property
    def wallet_file(self) -> Path:
        return self.wallet_dir / "wallet.toml"

    @property
    def websocket_url(self) -> str:
        """CometBFT websocket endpoint derived from the RPC URL."""
        if self.rpc_url.startswith("https://"):
            base = "wss://" + self.rpc_url[len("https://") :]
        else:
            base = "ws://" + self.rpc_url[len("http://") :]
        return f"{base}/websocket"

    @classmethod
    def from_env(cls, env_file: Path | None = None, **overrides: Any) -> WorkflowConfig:
        """Build a config from the environment and an optional ``.env`` file.

        Args:
            env_file: Path of the dotenv file (defaults to ``./.env``)
            **overrides: Explicit values that win over the environment;
                ``None`` values are ignored

        Returns:
            Validated configuration
        """
        load_dotenv(env_file or Path.cwd() / ".env", override=False)

        values: dict[str, Any] = {}
        for name, cast in _ENV_FIELDS.items():
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = cast(raw.strip())
            except ValueError as e:
                raise InvalidInputError(
                    f"Invalid value for {ENV_PREFIX + name.upper()}: {raw!r}"
                ) from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(value)


_ENV_FIELDS: dict[str, Any] = {
    "rpc_url": str,
    "indexer_url": str,
    "bridge_url": str,
    "chain_id": str,
    "wallet_dir": Path,
    "masp_dir": Path,
    "timeout": float,
    "native_token": str,
    "wait_for_commit": _parse_bool,
}


def validate_url(url: str) -> bool:
    """Validate that a service URL has an http(s) scheme.

    Args:
        url: URL to validate

    Returns:
        True if URL appears valid, False otherwise
    """
    if not url:
        return False

    # Basic URL validation - should start with http:// or https://
    return url.startswith("http://") or url.startswith("https://")
