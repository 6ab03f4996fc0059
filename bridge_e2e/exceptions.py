"""
bridge-e2e Exceptions

Errors are grouped by failure domain rather than by low-level cause. Stages
wrap whatever they catch into one of these before it leaves the stage.
"""


class E2EException(Exception):
    """Base exception for bridge-e2e."""
    pass


class WalletFundingError(E2EException):
    """The test identity could not be funded."""
    pass


class BridgingError(E2EException):
    """Deposit, withdrawal, message resolution or claim failed."""
    pass


class DeploymentError(E2EException):
    """Test token deployment failed."""
    pass


class ConfigurationError(E2EException):
    """Missing or invalid endpoints, addresses or keys."""
    pass


class NetworkError(E2EException):
    """RPC or indexer communication error."""
    pass


class PollTimeoutError(NetworkError):
    """A wait loop ran out of its configured attempts."""
    pass


class CorruptStateError(E2EException):
    """The checkpoint file exists but cannot be turned into a pipeline state."""
    pass
