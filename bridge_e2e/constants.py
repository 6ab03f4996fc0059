"""
bridge-e2e Constants

Global constants and environment configuration used throughout the tool.
Values under ENVIRONMENT CONFIGURATION may be overridden from a `.env` file
in the working directory; everything else is fixed protocol/test policy.
"""
import ast

from dotenv import dotenv_values
from web3 import Web3

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
_config = dotenv_values(".env")

E2E_DEFAULTS = {
    'E2E_CONFIG':                      './config.toml',
    'E2E_CONTRACTS_CONFIG':            './config-contracts.toml',
    'E2E_STATE_FILE':                  'e2e_resume.json',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE':                        '',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# FUNDING AND BRIDGING AMOUNTS (wei)
# ==================================================================================
FUNDING_AMOUNT = Web3.to_wei('0.004', 'ether')

# Native deposit L1 -> L2 moves half of the funding amount
DEPOSIT_AMOUNT = FUNDING_AMOUNT // 2

# Sent on top of every L1 deposit to pay for execution of the L2 message
DEPOSIT_FEE_ALLOWANCE = Web3.to_wei('0.00002', 'ether')

# Gas limit requested for the L2 side of an L1 -> L2 message
DEPOSIT_GAS_LIMIT = 170_000

# L2 funding target when funding directly (funder or manual)
L2_FUNDING_AMOUNT = FUNDING_AMOUNT // 2

# Native withdrawal L2 -> L1
WITHDRAW_AMOUNT = FUNDING_AMOUNT // 4

# L2 -> L1 messages are executed by the claim transaction, not by a relayer
WITHDRAW_GAS_LIMIT = 0


# ==================================================================================
# TEST TOKEN
# ==================================================================================
TOKEN_NAME = "Bridge E2E Token"
TOKEN_SYMBOL = "BE2E"
TOKEN_DECIMALS = 18
TOKEN_INITIAL_SUPPLY = 1_000_000 * 10 ** TOKEN_DECIMALS


# ==================================================================================
# POLLING
# ==================================================================================
# Every wait loop sleeps a fixed interval between attempts; no backoff.
DEFAULT_POLL_INTERVAL = 20.0       # destination tx / withdrawal proofs
DEFAULT_BALANCE_POLL_INTERVAL = 15.0
RECEIPT_TIMEOUT = 600              # per-transaction mining wait (seconds)
HTTP_TIMEOUT = 30.0


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """String that remembers its built-in default."""
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """Boolean (int subclass, like bool) that remembers its built-in default."""
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = E2E_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()


def parse_bool(v):
    """
    Convert "True"/"False" (any casing, surrounding whitespace) into bool.
    Anything else is returned untouched.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v


for key, default_raw in DEFAULTS.items():
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
