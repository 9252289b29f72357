"""ProofSelector: randomized greedy with local improvement (RGLI).

Picks a subset of proofs whose fee-adjusted ("net") value equals the target
(exact match) or exceeds it by as little as possible (close match).

Each trial runs three phases:

1. Randomized greedy fill up to the target.
2. Local improvement: swap members for the proof outside the subset that
   brings the net value closest to the target (binary search over the
   sorted complement).
3. Trim-back: drop the smallest members of a new best subset while the
   remaining subset still covers the target.

Fees are charged on the whole input set (``ceil(sum(ppk) / 1000)``), so
rounding applies to subset totals only. Per-proof values are kept in ppk
units so a proof worth less than its own rounded fee still counts.
"""

from __future__ import annotations

import bisect
import logging
import math
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ecash_wallet.config.settings import SelectionConfig
from ecash_wallet.engine.fees import ceil_ppk
from ecash_wallet.errors.definitions import ErrSelectionTimeout
from ecash_wallet.models.proof import SendResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from ecash_wallet.engine.fees import FeeModel
    from ecash_wallet.metrics.collector import WalletMetrics
    from ecash_wallet.models.proof import Proof

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class _Candidate:
    proof: Proof
    # Net value in ppk units: amount * 1000 - fee_ppk.
    ex_fee: int
    fee_ppk: int


def _ex_fee(candidate: _Candidate) -> int:
    return candidate.ex_fee


def _rightmost_at_most(items: list[_Candidate], value: int) -> int | None:
    index = bisect.bisect_right(items, value, key=_ex_fee) - 1
    return index if index >= 0 else None


def _leftmost_at_least(items: list[_Candidate], value: int) -> int | None:
    index = bisect.bisect_left(items, value, key=_ex_fee)
    return index if index < len(items) else None


class ProofSelector:
    """RGLI proof selection.

    Args:
        fees: Fee lookups for the proofs' keysets.
        config: Trial count, time budget, swap cap and close-match overage.
        metrics: Optional Prometheus metrics.
        rng: Random source (inject a seeded ``random.Random`` for tests).
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        fees: FeeModel,
        config: SelectionConfig | None = None,
        *,
        metrics: WalletMetrics | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fees = fees
        self._config = config or SelectionConfig()
        self._metrics = metrics
        self._rng = rng or random.Random()
        self._clock = clock

    def select(
        self,
        proofs: list[Proof],
        amount: int,
        *,
        include_fees: bool = False,
        exact_match: bool = False,
    ) -> SendResponse:
        """Split *proofs* into ``keep`` and ``send`` so ``send`` covers *amount*.

        Args:
            proofs: Candidate proofs.
            amount: Target net amount.
            include_fees: Measure the subset net of its own input fee.
            exact_match: Require the net value to equal *amount*.

        Returns:
            The partition. ``send`` is empty (and ``keep`` holds every proof)
            when no acceptable subset exists.

        Raises:
            SelectionTimeoutError: If an exact-match run exceeds its time
                budget.
            KeysetNotFoundError: If a proof's keyset is unknown.
        """
        if self._metrics is None:
            return self._select(proofs, amount, include_fees, exact_match)
        with self._metrics.track_selection(exact_match=exact_match):
            return self._select(proofs, amount, include_fees, exact_match)

    # ------------------------------------------------------------------
    # Algorithm
    # ------------------------------------------------------------------

    def _select(
        self, proofs: list[Proof], target: int, include_fees: bool, exact_match: bool
    ) -> SendResponse:
        cfg = self._config
        started = self._clock()

        def net(amount: int, fee_ppk: int) -> int:
            return amount - ceil_ppk(fee_ppk) if include_fees else amount

        def delta(amount: int, fee_ppk: int) -> float:
            # Excess over target in ppk units; fee_ppk breaks ties in favour
            # of cheaper keysets.
            if net(amount, fee_ppk) < target:
                return math.inf
            return (amount - target) * 1000 + fee_ppk

        # -- Pre-processing --------------------------------------------
        total_amount = 0
        total_fee_ppk = 0
        candidates: list[_Candidate] = []
        for proof in proofs:
            fee_ppk = self._fees.proof_fee_ppk(proof)
            ex_fee = proof.amount * 1000 - (fee_ppk if include_fees else 0)
            if include_fees and ex_fee <= 0:
                continue
            candidates.append(_Candidate(proof, ex_fee, fee_ppk))
            total_amount += proof.amount
            total_fee_ppk += fee_ppk

        candidates.sort(key=_ex_fee)

        if candidates:
            if exact_match:
                right = _rightmost_at_most(candidates, target * 1000)
                end = right + 1 if right is not None else 0
            else:
                bigger = _leftmost_at_least(candidates, target * 1000)
                if bigger is None:
                    end = len(candidates)
                else:
                    right = _rightmost_at_most(candidates, candidates[bigger].ex_fee)
                    end = right + 1 if right is not None else len(candidates)
            for dropped in candidates[end:]:
                total_amount -= dropped.proof.amount
                total_fee_ppk -= dropped.fee_ppk
            del candidates[end:]

        total_net = net(total_amount, total_fee_ppk)
        if target <= 0 or target > total_net:
            return SendResponse(keep=list(proofs), send=[])

        max_over = min(
            math.ceil(target * (1 + cfg.max_overage_percent / 100)),
            target + cfg.max_overage_amount,
            total_net,
        )

        def acceptable(net_sum: int) -> bool:
            return net_sum == target or (not exact_match and target <= net_sum <= max_over)

        best: list[_Candidate] | None = None
        best_delta = math.inf
        best_amount = 0
        best_fee_ppk = 0

        for trial in range(cfg.max_trials):
            # Phase 1: randomized greedy fill.
            subset: list[_Candidate] = []
            amount = 0
            fee_ppk = 0
            for candidate in self._rng.sample(candidates, len(candidates)):
                new_amount = amount + candidate.proof.amount
                new_fee_ppk = fee_ppk + candidate.fee_ppk
                net_sum = net(new_amount, new_fee_ppk)
                if exact_match and net_sum > target:
                    break
                subset.append(candidate)
                amount = new_amount
                fee_ppk = new_fee_ppk
                if net_sum >= target:
                    break

            # Phase 2: local improvement against the sorted complement.
            members = {id(c) for c in subset}
            others = [c for c in candidates if id(c) not in members]
            order = self._rng.sample(range(len(subset)), len(subset))[: cfg.max_swap_attempts]
            for i in order:
                if acceptable(net(amount, fee_ppk)):
                    break
                p = subset[i]
                temp_amount = amount - p.proof.amount
                temp_fee_ppk = fee_ppk - p.fee_ppk
                gap = target - net(temp_amount, temp_fee_ppk)
                if exact_match:
                    q_index = _rightmost_at_most(others, gap * 1000)
                else:
                    q_index = _leftmost_at_least(others, gap * 1000)
                if q_index is None:
                    continue
                q = others[q_index]
                # Exact match only swaps upward; close match never swaps upward
                # once the subset already overshoots.
                if (not exact_match or q.ex_fee > p.ex_fee) and (gap >= 0 or q.ex_fee <= p.ex_fee):
                    subset[i] = q
                    amount = temp_amount + q.proof.amount
                    fee_ppk = temp_fee_ppk + q.fee_ppk
                    del others[q_index]
                    bisect.insort_left(others, p, key=_ex_fee)

            trial_delta = delta(amount, fee_ppk)
            if trial_delta < best_delta:
                logger.debug(
                    "Best selection found in trial #%d: amount=%d delta=%s", trial, amount, trial_delta
                )
                best = sorted(subset, key=_ex_fee, reverse=True)
                best_delta = trial_delta
                best_amount = amount
                best_fee_ppk = fee_ppk

                # Phase 3: trim the smallest members while still covering.
                trimmed = list(best)
                while len(trimmed) > 1 and best_delta > 0:
                    p = trimmed.pop()
                    temp_amount = amount - p.proof.amount
                    temp_fee_ppk = fee_ppk - p.fee_ppk
                    temp_delta = delta(temp_amount, temp_fee_ppk)
                    if temp_delta == math.inf:
                        break
                    if temp_delta < best_delta:
                        best = list(trimmed)
                        best_delta = temp_delta
                        best_amount = amount = temp_amount
                        best_fee_ppk = fee_ppk = temp_fee_ppk

            if best is not None and best_delta < math.inf and acceptable(net(best_amount, best_fee_ppk)):
                break

            if (self._clock() - started) * 1000 > cfg.max_time_ms:
                if self._metrics is not None:
                    self._metrics.record_selection_timeout(exact_match=exact_match)
                if exact_match:
                    raise ErrSelectionTimeout
                logger.warning("Proof selection took too long, returning best selection so far")
                break

        if best is None or best_delta == math.inf:
            return SendResponse(keep=list(proofs), send=[])

        send = [c.proof for c in best]
        chosen = {id(p) for p in send}
        keep = [p for p in proofs if id(p) not in chosen]
        logger.info("Proof selection took %.1fms", (self._clock() - started) * 1000)
        return SendResponse(keep=keep, send=send)
