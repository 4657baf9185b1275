from __future__ import annotations


class KeeperStatError(Exception):
    """Base error for the status tool."""


class ConfigurationError(KeeperStatError, ValueError):
    """Missing or invalid operator-supplied configuration."""


class VaultError(ConfigurationError):
    """The secret store could not produce a private key."""


class DepositValidationError(KeeperStatError, ValueError):
    pass


class SubscriptionError(KeeperStatError, RuntimeError):
    pass
