"""Pre-defined error instances shared across the wallet core."""

from __future__ import annotations

from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.errors.wallet_errors import (
    CounterCapabilityError,
    InsufficientFundsError,
    InvalidConfigurationError,
    KeysetNotFoundError,
    SelectionTimeoutError,
)

# -- Funds -----------------------------------------------------------------

ErrNotEnoughFunds = InsufficientFundsError("not enough funds available to send")
ErrNotEnoughFundsForSwap = InsufficientFundsError("not enough funds available for swap")

# -- Selection -------------------------------------------------------------

ErrSelectionTimeout = SelectionTimeoutError(
    "proof selection took too long, try again with a smaller proof set"
)

# -- Output planning -------------------------------------------------------

ErrCustomOutputFees = InvalidConfigurationError(
    "custom outputs do not support automatic fee inclusion"
)
ErrSeedRequired = InvalidConfigurationError("deterministic outputs require a wallet seed")
ErrLockPubkeyRequired = InvalidConfigurationError("locked outputs require a public key")
ErrFeeNotConverged = InvalidConfigurationError("fee augmentation did not converge")
ErrCustomMeltChange = InvalidConfigurationError(
    "custom outputs are not supported for melt change"
)
ErrInvalidMintAmount = InvalidConfigurationError("mint amount must be positive")

# -- Counters --------------------------------------------------------------

ErrNegativeReservation = InvalidConfigurationError("reservation count must not be negative")
ErrNegativeCounter = InvalidConfigurationError("counter value must not be negative")
ErrCounterNotMutable = CounterCapabilityError("counter source does not support advancing")
ErrCounterNoSetNext = CounterCapabilityError("counter source does not support set_next")
ErrCounterNoSnapshot = CounterCapabilityError("counter source does not support snapshot")

# -- Keysets ---------------------------------------------------------------

ErrNoActiveKeyset = KeysetNotFoundError("no active keyset found")
ErrKeyChainNotLoaded = KeysetNotFoundError("key chain not initialized, call load() first")

# -- Receive ---------------------------------------------------------------

ErrWrongMint = InvalidConfigurationError("token belongs to a different mint")
ErrWrongUnit = InvalidConfigurationError("token is not in the wallet unit")

# -- Mint responses --------------------------------------------------------

ErrSignatureCount = MintError("mint returned an unexpected number of signatures")
ErrTooMuchChange = MintError("mint returned more change signatures than blanks provided")
