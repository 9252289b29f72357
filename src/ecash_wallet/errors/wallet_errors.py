"""WalletError: base exception class for all ecash wallet errors."""

from __future__ import annotations


class WalletError(Exception):
    """Base error for all wallet operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
        retryable: True if the caller may retry the same call (possibly with
            relaxed parameters) and expect a different outcome.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "wallet-error",
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable


class InsufficientFundsError(WalletError):
    """The supplied proofs cannot cover the requested amount."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="insufficient-funds")


class InvalidConfigurationError(WalletError):
    """A caller-supplied parameter or policy is inconsistent."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid-configuration")


class SelectionTimeoutError(WalletError):
    """Exact-match proof selection ran out of its time budget."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="selection-timeout", retryable=True)


class CounterCapabilityError(WalletError):
    """The counter source does not implement the requested capability."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="counter-capability-unsupported")


class KeysetNotFoundError(WalletError):
    """No keyset with the requested id is known to the key chain."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="keyset-not-found")
