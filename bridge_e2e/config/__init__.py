"""
bridge-e2e Configuration

Loads config.toml and config-contracts.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    E2EConfig,
    RPCSection,
    FrontendSection,
    AccountsSection,
    ContractsConfig,
    E2ESection,
    load_config,
)

__all__ = [
    "E2EConfig",
    "RPCSection",
    "FrontendSection",
    "AccountsSection",
    "ContractsConfig",
    "E2ESection",
    "load_config",
]
