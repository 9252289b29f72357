"""Output policies: how the secrets of new outputs are produced.

A closed union of frozen dataclasses; each variant carries only what it
needs. Planning code matches on the variant type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from ecash_wallet.models.keyset import Keyset
    from ecash_wallet.models.output_data import LockOptions, OutputDataLike

    OutputFactory = Callable[[int, Keyset], OutputDataLike]


@dataclass(frozen=True)
class RandomOutputs:
    """Fresh random secrets."""

    denominations: tuple[int, ...] = ()


@dataclass(frozen=True)
class DeterministicOutputs:
    """Secrets derived from the wallet seed.

    ``counter == 0`` asks the wallet to reserve indices from its counter
    source; a positive counter is used as-is and the caller owns the range.
    """

    counter: int = 0
    denominations: tuple[int, ...] = ()


@dataclass(frozen=True)
class LockedOutputs:
    """P2PK-locked secrets."""

    options: LockOptions
    denominations: tuple[int, ...] = ()


@dataclass(frozen=True)
class FactoryOutputs:
    """Caller-supplied factory called once per denomination."""

    factory: OutputFactory
    denominations: tuple[int, ...] = ()


@dataclass(frozen=True)
class CustomOutputs:
    """Pre-built outputs used verbatim; no splitting and no fee augmentation."""

    data: tuple[OutputDataLike, ...] = field(default_factory=tuple)


OutputPolicy = RandomOutputs | DeterministicOutputs | LockedOutputs | FactoryOutputs | CustomOutputs


def is_plain_random(policy: OutputPolicy | None) -> bool:
    """True for ``None`` or random outputs without pinned denominations."""
    return policy is None or (isinstance(policy, RandomOutputs) and not policy.denominations)
