"""Exception hierarchy for the staking node."""


class NodeError(Exception):
    """Base class for all node errors."""


class ConfigError(NodeError):
    """Raised when the environment holds an unusable configuration value."""


class WalletLoadError(NodeError):
    """Raised when the hot wallet cannot be read or decrypted."""


class StoreClosedError(NodeError):
    """Raised when work is submitted to a store that is shutting down."""


class FatalStartupError(NodeError):
    """A startup step failed and the process must exit without serving."""


class StoreUnavailableError(FatalStartupError):
    pass


class MigrationError(FatalStartupError):
    pass


class RpcUnavailableError(FatalStartupError):
    pass


class TransportError(FatalStartupError):
    pass
