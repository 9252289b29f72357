"""Denomination helpers: canonical splits and keep-amount optimisation."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Literal

from ecash_wallet.errors.wallet_errors import InvalidConfigurationError

if TYPE_CHECKING:
    from ecash_wallet.models.proof import Proof


def keyset_amounts(keys: Mapping[int, str] | Iterable[int], *, descending: bool = False) -> list[int]:
    """Denominations a keyset can sign, sorted."""
    return sorted((int(a) for a in keys), reverse=descending)


def split_amount(
    value: int,
    keys: Mapping[int, str] | Iterable[int],
    split: list[int] | None = None,
    order: Literal["asc", "desc"] = "asc",
) -> list[int]:
    """Split *value* into keyset denominations.

    A caller-supplied *split* is kept and the remainder is filled greedily
    from the largest denomination down.

    Args:
        value: Amount to split.
        keys: Keyset keys (or just its amounts).
        split: Optional denominations that must be part of the result.
            Zero entries are allowed (blank outputs).
        order: Sort order of the result.

    Returns:
        Denominations summing to *value*.

    Raises:
        InvalidConfigurationError: If *split* exceeds *value*, uses an amount
            the keyset does not support, or the remainder cannot be covered.
    """
    available = keyset_amounts(keys, descending=True)
    chunks: list[int] = []
    if split:
        split_sum = sum(split)
        if split_sum > value:
            msg = f"Split is greater than total amount: {split_sum} > {value}"
            raise InvalidConfigurationError(msg)
        unsupported = [a for a in split if a != 0 and a not in available]
        if unsupported:
            msg = f"Provided amount preferences do not match the amounts of the mint keyset: {unsupported}"
            raise InvalidConfigurationError(msg)
        chunks.extend(split)
        value -= split_sum
    for amount in available:
        if amount <= 0:
            continue
        count, value = divmod(value, amount)
        chunks.extend([amount] * count)
    if value:
        msg = f"Cannot split remaining amount {value} with keyset amounts"
        raise InvalidConfigurationError(msg)
    return sorted(chunks, reverse=order == "desc")


def get_keep_amounts(
    proofs_we_have: Iterable[Proof],
    amount_to_keep: int,
    keys: Mapping[int, str] | Iterable[int],
    target_count: int,
) -> list[int]:
    """Choose change denominations that top up the wallet's proof counts.

    For each denomination (smallest first) the result asks for enough
    proofs to bring the wallet to *target_count* of that amount, without
    exceeding *amount_to_keep*; the rest is split canonically.

    Returns:
        Denominations summing to *amount_to_keep*, ascending.
    """
    have = Counter(p.amount for p in proofs_we_have)
    wanted: list[int] = []
    total = 0
    for amount in keyset_amounts(keys):
        for _ in range(max(target_count - have[amount], 0)):
            if total + amount > amount_to_keep:
                break
            wanted.append(amount)
            total += amount
    remainder = amount_to_keep - total
    if remainder:
        wanted.extend(split_amount(remainder, keys))
    return sorted(wanted)
