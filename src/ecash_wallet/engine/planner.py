"""OutputPlanner: turns an amount and an output policy into output requests.

Planning happens in three steps so one operation can reserve deterministic
counters for several groups of outputs at once:

1. ``configure`` resolves denominations (and fee augmentation) into an
   ``OutputSpec``.
2. ``assign_counters`` reserves one contiguous counter block for every spec
   that asked for auto-assigned deterministic secrets.
3. ``build`` creates the blinded outputs.

``plan`` runs all three for a single group.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from ecash_wallet.config.settings import OutputConfig
from ecash_wallet.engine.amounts import get_keep_amounts, split_amount
from ecash_wallet.engine.counters import OperationCounters
from ecash_wallet.engine.fees import fee_for_inputs
from ecash_wallet.engine.policy import (
    CustomOutputs,
    DeterministicOutputs,
    FactoryOutputs,
    LockedOutputs,
    OutputPolicy,
    RandomOutputs,
)
from ecash_wallet.errors.definitions import (
    ErrCustomMeltChange,
    ErrCustomOutputFees,
    ErrFeeNotConverged,
    ErrLockPubkeyRequired,
    ErrSeedRequired,
)
from ecash_wallet.errors.wallet_errors import InvalidConfigurationError
from ecash_wallet.events import WalletEvents
from ecash_wallet.models.output_data import OutputData, sum_output_amounts

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ecash_wallet.engine.counters import CounterSource
    from ecash_wallet.events import CountersReservedListener
    from ecash_wallet.metrics.collector import WalletMetrics
    from ecash_wallet.models.keyset import Keyset
    from ecash_wallet.models.output_data import OutputDataLike
    from ecash_wallet.models.proof import Proof

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputSpec:
    """A configured group of outputs.

    Attributes:
        amount: Total of the group (including any fee augmentation).
        policy: The output policy.
        denominations: Resolved denominations; empty for custom outputs.
        counter: First deterministic index, or ``None`` while a deterministic
            group still waits for auto-assignment.
    """

    amount: int
    policy: OutputPolicy
    denominations: tuple[int, ...] = ()
    counter: int | None = None

    @property
    def counters_needed(self) -> int:
        """Indices this spec still has to reserve."""
        if isinstance(self.policy, DeterministicOutputs) and self.counter is None:
            return len(self.denominations)
        return 0


class OutputPlanner:
    """Plans output requests for a wallet.

    Args:
        counters: Source of deterministic counter indices.
        seed: Wallet seed; required for deterministic outputs.
        config: Denomination target and fee-iteration cap.
        events: Channel notified when counters are reserved.
        metrics: Optional Prometheus metrics.
    """

    def __init__(
        self,
        counters: CounterSource,
        *,
        seed: bytes | None = None,
        config: OutputConfig | None = None,
        events: WalletEvents | None = None,
        metrics: WalletMetrics | None = None,
    ) -> None:
        self._counters = counters
        self._seed = seed
        self._config = config or OutputConfig()
        self._events = events or WalletEvents()
        self._metrics = metrics

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def plan(
        self,
        amount: int,
        keyset: Keyset,
        policy: OutputPolicy,
        *,
        include_fees: bool = False,
        proofs_we_have: Iterable[Proof] = (),
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> list[OutputDataLike]:
        """Configure, reserve counters for, and build one group of outputs.

        Returns an empty list (and logs a warning) for non-positive amounts.

        Raises:
            InvalidConfigurationError: On inconsistent denominations or policy.
        """
        if amount <= 0:
            logger.warning("Refusing to plan outputs for non-positive amount %d", amount)
            return []
        spec = self.configure(
            amount, keyset, policy, include_fees=include_fees, proofs_we_have=proofs_we_have
        )
        (spec,), _ = await self.assign_counters(keyset.id, spec, on_counters_reserved=on_counters_reserved)
        return self.build(spec, keyset)

    async def plan_blanks(
        self,
        count: int,
        keyset: Keyset,
        policy: OutputPolicy,
        *,
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> list[OutputDataLike]:
        """Build *count* zero-amount outputs (NUT-08 blanks) for melt change.

        Raises:
            InvalidConfigurationError: For custom policies.
        """
        if isinstance(policy, CustomOutputs):
            raise ErrCustomMeltChange
        if count <= 0:
            return []
        self._check_policy(policy)
        spec = OutputSpec(amount=0, policy=policy, denominations=(0,) * count, counter=_explicit_counter(policy))
        (spec,), _ = await self.assign_counters(keyset.id, spec, on_counters_reserved=on_counters_reserved)
        return self.build(spec, keyset)

    def configure(
        self,
        amount: int,
        keyset: Keyset,
        policy: OutputPolicy,
        *,
        include_fees: bool = False,
        proofs_we_have: Iterable[Proof] = (),
    ) -> OutputSpec:
        """Resolve the denominations for *amount* under *policy*.

        Args:
            amount: Amount the outputs must carry before fee augmentation.
            keyset: Keyset the outputs will be signed with.
            policy: Output policy.
            include_fees: Add outputs covering the fee the receiver pays to
                spend these outputs later.
            proofs_we_have: Proofs already held, used to steer the split
                toward denominations the wallet is short of.

        Returns:
            The configured spec; its ``amount`` includes any fee augmentation.

        Raises:
            InvalidConfigurationError: If custom outputs are combined with
                fees or do not match the amount, if supplied denominations do
                not sum to the amount, or if the policy lacks a seed or key.
        """
        if isinstance(policy, CustomOutputs):
            if include_fees:
                raise ErrCustomOutputFees
            custom_total = sum_output_amounts(list(policy.data))
            if custom_total != amount:
                msg = f"Custom output data total ({custom_total}) does not match amount ({amount})"
                raise InvalidConfigurationError(msg)
            return OutputSpec(amount=amount, policy=policy)

        self._check_policy(policy)
        denominations = list(policy.denominations)
        if denominations:
            _check_denominations(denominations, amount)
        else:
            proofs_we_have = list(proofs_we_have)
            if proofs_we_have:
                denominations = get_keep_amounts(
                    proofs_we_have, amount, keyset.keys, self._config.denomination_target
                )
            else:
                denominations = split_amount(amount, keyset.keys)

        new_amount = amount
        if include_fees:
            fee_amounts = self._fee_denominations(len(denominations), keyset)
            new_amount += sum(fee_amounts)
            denominations.extend(fee_amounts)

        return OutputSpec(
            amount=new_amount,
            policy=policy,
            denominations=tuple(denominations),
            counter=_explicit_counter(policy),
        )

    async def assign_counters(
        self,
        keyset_id: str,
        *specs: OutputSpec,
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> tuple[list[OutputSpec], OperationCounters | None]:
        """Reserve one counter block for every spec awaiting auto-assignment.

        Specs are patched in order, each taking the next slice of the block.

        Returns:
            The patched specs and the reservation, or ``None`` if nothing
            needed reserving.
        """
        total = sum(s.counters_needed for s in specs)
        if total == 0:
            return list(specs), None

        block = await self._counters.reserve(keyset_id, total)
        cursor = block.start
        patched: list[OutputSpec] = []
        for spec in specs:
            need = spec.counters_needed
            if need == 0:
                patched.append(spec)
                continue
            patched.append(replace(spec, counter=cursor))
            cursor += need

        used = OperationCounters.from_range(keyset_id, block)
        logger.debug("Reserved counters %d..%d on keyset %s", used.start, used.next - 1, keyset_id)
        if self._metrics is not None:
            self._metrics.record_counters_reserved(keyset_id, used.count)
        await self._events.counters_reserved(used, on_counters_reserved)
        return patched, used

    def build(self, spec: OutputSpec, keyset: Keyset) -> list[OutputDataLike]:
        """Create the blinded outputs for a configured spec.

        Raises:
            InvalidConfigurationError: If the ``OutputSpec`` is inconsistent or a
                deterministic spec has no counter yet.
        """
        policy = spec.policy
        if spec.amount < 0:
            logger.warning("Amount was negative: %d", spec.amount)
            return []
        if isinstance(policy, CustomOutputs):
            return list(policy.data)

        denominations = list(spec.denominations)
        if denominations:
            _check_denominations(denominations, spec.amount)
        else:
            denominations = split_amount(spec.amount, keyset.keys)
        if not denominations:
            return []

        match policy:
            case RandomOutputs():
                return list(OutputData.create_random(denominations, keyset))
            case DeterministicOutputs():
                if spec.counter is None:
                    msg = "Deterministic outputs need a counter; call assign_counters() first"
                    raise InvalidConfigurationError(msg)
                if self._seed is None:
                    raise ErrSeedRequired
                return list(OutputData.create_deterministic(denominations, self._seed, spec.counter, keyset))
            case LockedOutputs(options=options):
                return list(OutputData.create_locked(denominations, options, keyset))
            case FactoryOutputs(factory=factory):
                return [factory(amount, keyset) for amount in denominations]
        msg = f"Unsupported output policy: {type(policy).__name__}"
        raise InvalidConfigurationError(msg)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_policy(self, policy: OutputPolicy) -> None:
        if isinstance(policy, DeterministicOutputs) and self._seed is None:
            raise ErrSeedRequired
        if isinstance(policy, LockedOutputs) and not policy.options.pubkeys:
            raise ErrLockPubkeyRequired

    def _fee_denominations(self, n_outputs: int, keyset: Keyset) -> list[int]:
        """Smallest fee whose own outputs do not raise the receiver's fee further."""
        receive_fee = fee_for_inputs(n_outputs, keyset.input_fee_ppk)
        fee_amounts = split_amount(receive_fee, keyset.keys)
        iterations = 0
        while fee_for_inputs(n_outputs + len(fee_amounts), keyset.input_fee_ppk) > receive_fee:
            iterations += 1
            if iterations > self._config.max_fee_iterations:
                raise ErrFeeNotConverged
            receive_fee += 1
            fee_amounts = split_amount(receive_fee, keyset.keys)
        return fee_amounts


def _explicit_counter(policy: OutputPolicy) -> int | None:
    if isinstance(policy, DeterministicOutputs) and policy.counter > 0:
        return policy.counter
    return None


def _check_denominations(denominations: list[int], amount: int) -> None:
    split_sum = sum(denominations)
    if split_sum != amount:
        msg = f"Custom denominations sum mismatch: {split_sum} != {amount}"
        raise InvalidConfigurationError(msg)
