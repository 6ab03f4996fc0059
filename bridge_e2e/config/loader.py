"""
bridge-e2e TOML Configuration Loader

Reads the deployment's `config.toml` (the same file the stack's charts are
rendered from) and `config-contracts.toml` (deployed contract addresses),
then applies environment variable overrides.

Environment variable mapping:
    resolved L1 RPC URL         → E2E_L1_RPC
    resolved L2 RPC URL         → E2E_L2_RPC
    [frontend] BRIDGE_API_URI   → E2E_BRIDGE_API_URI
    [e2e] poll_interval         → E2E_POLL_INTERVAL
    [e2e] max_poll_attempts     → E2E_MAX_POLL_ATTEMPTS

Private keys are never logged.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import is_address, to_checksum_address

from ..constants import (
    DEFAULT_BALANCE_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    E2E_CONFIG,
    E2E_CONTRACTS_CONFIG,
    RECEIPT_TIMEOUT,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Sections of config.toml
# ---------------------------------------------------------------------------


@dataclass
class RPCSection:
    """[general] section: cluster-internal RPC endpoints used in pod mode."""
    l1_rpc_endpoint: str = ""
    l2_rpc_endpoint: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RPCSection":
        return cls(
            l1_rpc_endpoint=data.get("L1_RPC_ENDPOINT", ""),
            l2_rpc_endpoint=data.get("L2_RPC_ENDPOINT", ""),
        )


@dataclass
class FrontendSection:
    """[frontend] section: public endpoints."""
    external_rpc_uri_l1: str = ""
    external_rpc_uri_l2: str = ""
    bridge_api_uri: str = ""
    external_explorer_uri_l1: str = ""
    external_explorer_uri_l2: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrontendSection":
        return cls(
            external_rpc_uri_l1=data.get("EXTERNAL_RPC_URI_L1", ""),
            external_rpc_uri_l2=data.get("EXTERNAL_RPC_URI_L2", ""),
            bridge_api_uri=data.get("BRIDGE_API_URI", ""),
            external_explorer_uri_l1=data.get("EXTERNAL_EXPLORER_URI_L1", ""),
            external_explorer_uri_l2=data.get("EXTERNAL_EXPLORER_URI_L2", ""),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("E2E_BRIDGE_API_URI"):
            self.bridge_api_uri = v


@dataclass
class AccountsSection:
    """[accounts] section."""
    deployer_private_key: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountsSection":
        return cls(deployer_private_key=data.get("DEPLOYER_PRIVATE_KEY", ""))

    def __repr__(self) -> str:
        return f"AccountsSection(deployer_private_key={'<set>' if self.deployer_private_key else '<unset>'})"


@dataclass
class E2ESection:
    """[e2e] section: polling policy. `max_poll_attempts = 0` means unlimited."""
    poll_interval: float = DEFAULT_POLL_INTERVAL
    balance_poll_interval: float = DEFAULT_BALANCE_POLL_INTERVAL
    max_poll_attempts: int = 0
    receipt_timeout: int = RECEIPT_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "E2ESection":
        try:
            return cls(
                poll_interval=float(data.get("poll_interval", DEFAULT_POLL_INTERVAL)),
                balance_poll_interval=float(data.get("balance_poll_interval", DEFAULT_BALANCE_POLL_INTERVAL)),
                max_poll_attempts=int(data.get("max_poll_attempts", 0)),
                receipt_timeout=int(data.get("receipt_timeout", RECEIPT_TIMEOUT)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid [e2e] polling setting: {e}") from e

    def apply_env(self) -> None:
        try:
            if v := os.environ.get("E2E_POLL_INTERVAL"):
                self.poll_interval = float(v)
            if v := os.environ.get("E2E_MAX_POLL_ATTEMPTS"):
                self.max_poll_attempts = int(v)
        except ValueError as e:
            raise ConfigurationError(f"Invalid polling override in environment: {e}") from e

    @property
    def attempts_bound(self) -> Optional[int]:
        return self.max_poll_attempts or None


# ---------------------------------------------------------------------------
# config-contracts.toml
# ---------------------------------------------------------------------------

_CONTRACT_KEYS = {
    "l1_eth_gateway": "L1_ETH_GATEWAY_PROXY_ADDR",
    "l2_eth_gateway": "L2_ETH_GATEWAY_PROXY_ADDR",
    "l1_message_queue": "L1_MESSAGE_QUEUE_PROXY_ADDR",
    "l1_gateway_router": "L1_GATEWAY_ROUTER_PROXY_ADDR",
    "l2_gateway_router": "L2_GATEWAY_ROUTER_PROXY_ADDR",
    "l1_messenger": "L1_SCROLL_MESSENGER_PROXY_ADDR",
}


@dataclass
class ContractsConfig:
    """Bridge contract addresses, checksummed on validation."""
    l1_eth_gateway: str = ""
    l2_eth_gateway: str = ""
    l1_message_queue: str = ""
    l1_gateway_router: str = ""
    l2_gateway_router: str = ""
    l1_messenger: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContractsConfig":
        return cls(**{attr: data.get(key, "") for attr, key in _CONTRACT_KEYS.items()})

    def validate(self) -> None:
        missing: List[str] = []
        for attr, key in _CONTRACT_KEYS.items():
            value = getattr(self, attr)
            if not value:
                missing.append(key)
                continue
            if not is_address(value):
                raise ConfigurationError(f"{key} is not a valid address: {value!r}")
            setattr(self, attr, to_checksum_address(value))
        if missing:
            raise ConfigurationError(f"Missing contract address(es): {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class E2EConfig:
    """
    Everything a run needs from disk and environment.

    `l1_rpc_url` / `l2_rpc_url` are resolved from [general] when running
    inside the cluster (`pod=True`) and from [frontend] otherwise.
    """
    general: RPCSection = field(default_factory=RPCSection)
    frontend: FrontendSection = field(default_factory=FrontendSection)
    accounts: AccountsSection = field(default_factory=AccountsSection)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    e2e: E2ESection = field(default_factory=E2ESection)
    pod: bool = False
    l1_rpc_url: str = ""
    l2_rpc_url: str = ""

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any], contracts: Dict[str, Any], pod: bool = False) -> "E2EConfig":
        general = RPCSection.from_dict(data.get("general", {}))
        frontend = FrontendSection.from_dict(data.get("frontend", {}))
        if pod:
            l1, l2 = general.l1_rpc_endpoint, general.l2_rpc_endpoint
        else:
            l1, l2 = frontend.external_rpc_uri_l1, frontend.external_rpc_uri_l2
        return cls(
            general=general,
            frontend=frontend,
            accounts=AccountsSection.from_dict(data.get("accounts", {})),
            contracts=ContractsConfig.from_dict(contracts),
            e2e=E2ESection.from_dict(data.get("e2e", {})),
            pod=pod,
            l1_rpc_url=l1,
            l2_rpc_url=l2,
        )

    @classmethod
    def from_files(cls, config_path: str, contracts_path: str, pod: bool = False) -> "E2EConfig":
        """
        Load both TOML files, apply env overrides and validate.

        Raises:
            ConfigurationError: unreadable file, bad TOML or invalid values
        """
        raw = _read_toml(config_path)
        contracts = _read_toml(contracts_path)
        cfg = cls.from_dict(raw, contracts, pod=pod)
        cfg.apply_env()
        cfg.validate()
        logger.debug("Loaded config from %s and %s (pod=%s)", config_path, contracts_path, pod)
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        if v := os.environ.get("E2E_L1_RPC"):
            self.l1_rpc_url = v
        if v := os.environ.get("E2E_L2_RPC"):
            self.l2_rpc_url = v
        self.frontend.apply_env()
        self.e2e.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        if not self.l1_rpc_url or not self.l2_rpc_url:
            if self.pod:
                keys = "L1_RPC_ENDPOINT and L2_RPC_ENDPOINT in [general]"
            else:
                keys = "EXTERNAL_RPC_URI_L1 and EXTERNAL_RPC_URI_L2 in [frontend]"
            raise ConfigurationError(f"Missing RPC URL(s). Please ensure {keys} are defined.")
        if not self.frontend.bridge_api_uri:
            raise ConfigurationError("Missing BRIDGE_API_URI in [frontend]")
        if self.e2e.poll_interval <= 0 or self.e2e.balance_poll_interval <= 0:
            raise ConfigurationError("Poll intervals must be > 0")
        if self.e2e.max_poll_attempts < 0:
            raise ConfigurationError("max_poll_attempts must be >= 0 (0 = unlimited)")
        if self.e2e.receipt_timeout <= 0:
            raise ConfigurationError("receipt_timeout must be > 0")
        self.contracts.validate()
        return True


def _read_toml(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with open(p, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    config_path: Optional[str] = None,
    contracts_path: Optional[str] = None,
    pod: bool = False,
) -> E2EConfig:
    """
    Load the e2e configuration.

    Resolution order for each path:
        1. Explicit argument
        2. E2E_CONFIG / E2E_CONTRACTS_CONFIG (env or .env)
    """
    return E2EConfig.from_files(
        config_path or os.environ.get("E2E_CONFIG", str(E2E_CONFIG)),
        contracts_path or os.environ.get("E2E_CONTRACTS_CONFIG", str(E2E_CONTRACTS_CONFIG)),
        pod=pod,
    )
