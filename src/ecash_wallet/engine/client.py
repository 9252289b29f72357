"""WalletEngine: orchestrates selection, planning and mint round trips.

Every operation follows the same shape: pick a keyset, configure output
groups, reserve deterministic counters once for the whole operation, build
the outputs, talk to the mint, then unblind the signatures into proofs.
"""

from __future__ import annotations

import contextlib
import logging
import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ecash_wallet.config.settings import SecretsPolicy, WalletConfig
from ecash_wallet.crypto.curve import point_to_hex
from ecash_wallet.crypto.dhke import hash_to_curve
from ecash_wallet.engine.assembler import assemble
from ecash_wallet.engine.counters import EphemeralCounterSource, WalletCounters
from ecash_wallet.engine.fees import FeeModel
from ecash_wallet.engine.planner import OutputPlanner
from ecash_wallet.engine.policy import DeterministicOutputs, RandomOutputs, is_plain_random
from ecash_wallet.engine.selection import ProofSelector
from ecash_wallet.errors.definitions import (
    ErrInvalidMintAmount,
    ErrNotEnoughFunds,
    ErrNotEnoughFundsForSwap,
    ErrSeedRequired,
    ErrSignatureCount,
    ErrTooMuchChange,
    ErrWrongMint,
    ErrWrongUnit,
)
from ecash_wallet.errors.mint_errors import MintError
from ecash_wallet.errors.wallet_errors import CounterCapabilityError, InsufficientFundsError, WalletError
from ecash_wallet.events import WalletEvents
from ecash_wallet.metrics.collector import WalletMetrics
from ecash_wallet.models.keyset import KeyChain
from ecash_wallet.models.output_data import OutputData
from ecash_wallet.models.payloads import MeltBlanks, MeltPayload, MintPayload
from ecash_wallet.models.proof import SendResponse, sum_proofs
from ecash_wallet.models.quotes import MeltProofsResponse

if TYPE_CHECKING:
    import random
    from collections.abc import Iterable, Iterator

    from ecash_wallet.engine.counters import CounterSource
    from ecash_wallet.engine.policy import OutputPolicy
    from ecash_wallet.events import ChangeOutputsListener, CountersReservedListener
    from ecash_wallet.mint.client import MintTransport
    from ecash_wallet.models.keyset import Keyset
    from ecash_wallet.models.output_data import OutputDataLike
    from ecash_wallet.models.proof import BlindedSignature, Proof, ProofStateInfo
    from ecash_wallet.models.quotes import MeltQuote, MintQuote
    from ecash_wallet.models.token import Token

logger = logging.getLogger(__name__)

_PACKAGE_LOGGER = "ecash_wallet"


@dataclass
class RestoreResult:
    """Proofs recovered from deterministic secrets.

    Attributes:
        proofs: Recovered proofs, in counter order.
        last_counter: Highest counter the mint had a signature for, if any.
    """

    proofs: list[Proof] = field(default_factory=list)
    last_counter: int | None = None


def sanitize_url(url: str) -> str:
    """Normalise a mint URL for comparison (no trailing slashes)."""
    return url.strip().rstrip("/")


class WalletEngine:
    """Transaction core of an ecash wallet bound to one mint and unit.

    Args:
        config: Wallet configuration.
        transport: Mint transport (normally a connected ``MintClient``).
        seed: Wallet seed for deterministic secrets.
        counter_source: Counter source; defaults to an in-memory one.
        keychain: Pre-populated key chain; loaded from the mint otherwise.
        metrics: Prometheus metrics; created when enabled in *config*.
        rng: Random source for proof selection.

    Usage::

        engine = WalletEngine(config, mint_client, seed=seed)
        await engine.initialize()
        result = await engine.send(10, proofs)
    """

    def __init__(
        self,
        config: WalletConfig,
        transport: MintTransport,
        *,
        seed: bytes | None = None,
        counter_source: CounterSource | None = None,
        keychain: KeyChain | None = None,
        metrics: WalletMetrics | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        if config.debug:
            logging.getLogger(_PACKAGE_LOGGER).setLevel(logging.DEBUG)
        self._transport = transport
        self._seed = seed
        self._keychain = keychain or KeyChain(unit=config.unit)
        self._counters = WalletCounters(counter_source or EphemeralCounterSource())
        if metrics is None and config.metrics.enabled:
            metrics = WalletMetrics()
        self._metrics = metrics
        self._events = WalletEvents()
        self._fees = FeeModel(self._keychain)
        self._planner = OutputPlanner(
            self._counters.source,
            seed=seed,
            config=config.output,
            events=self._events,
            metrics=metrics,
        )
        self._selector = ProofSelector(self._fees, config.selection, metrics=metrics, rng=rng)

    async def initialize(self) -> None:
        """Load keysets and keys from the mint unless already loaded."""
        if not self._keychain.is_loaded:
            await self._keychain.load(self._transport)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> WalletConfig:
        """Get the wallet configuration."""
        return self._config

    @property
    def unit(self) -> str:
        """Wallet unit."""
        return self._config.unit

    @property
    def mint_url(self) -> str:
        """Sanitized URL of the mint this wallet talks to."""
        return sanitize_url(self._config.mint.url)

    @property
    def keychain(self) -> KeyChain:
        """The wallet's keyset registry."""
        return self._keychain

    @property
    def counters(self) -> WalletCounters:
        """Deterministic counter facade."""
        return self._counters

    @property
    def events(self) -> WalletEvents:
        """Wallet-level listeners for counter reservations and melt blanks."""
        return self._events

    @property
    def planner(self) -> OutputPlanner:
        """The output planner."""
        return self._planner

    @property
    def metrics(self) -> WalletMetrics | None:
        """Prometheus metrics, if enabled."""
        return self._metrics

    def default_output_type(self) -> OutputPolicy:
        """Output policy used when a caller gives none."""
        policy = self._config.secrets_policy
        if policy == SecretsPolicy.DETERMINISTIC or (policy == SecretsPolicy.AUTO and self._seed is not None):
            return DeterministicOutputs()
        return RandomOutputs()

    # ------------------------------------------------------------------
    # Fees and selection
    # ------------------------------------------------------------------

    def get_fees_for_proofs(self, proofs: Iterable[Proof]) -> int:
        """Fee the mint charges to spend *proofs*."""
        return self._fees.fees_for_proofs(proofs)

    def get_fees_for_keyset(self, n_inputs: int, keyset_id: str) -> int:
        """Fee for spending *n_inputs* proofs of *keyset_id*."""
        return self._fees.fees_for_keyset(n_inputs, keyset_id)

    def select_proofs_to_send(
        self,
        proofs: list[Proof],
        amount: int,
        *,
        include_fees: bool = False,
        exact_match: bool = False,
    ) -> SendResponse:
        """Run RGLI selection without touching the mint."""
        return self._selector.select(proofs, amount, include_fees=include_fees, exact_match=exact_match)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def send_offline(
        self,
        amount: int,
        proofs: list[Proof],
        *,
        include_fees: bool = False,
        exact_match: bool = True,
        require_dleq: bool = False,
    ) -> SendResponse:
        """Send proofs as-is, without a swap.

        Args:
            amount: Amount to send.
            proofs: Candidate proofs.
            include_fees: Also cover the receiver's fee to swap the proofs.
            exact_match: Require an exact selection.
            require_dleq: Only send proofs carrying a DLEQ and keep it on them.

        Raises:
            InsufficientFundsError: If the proofs cannot cover *amount*.
            SelectionTimeoutError: If exact selection ran out of time.
        """
        if require_dleq:
            proofs = [p for p in proofs if p.dleq is not None]
        if sum_proofs(proofs) < amount:
            raise ErrNotEnoughFunds
        selected = self.select_proofs_to_send(
            proofs, amount, include_fees=include_fees, exact_match=exact_match
        )
        send = [p.prepared_for_mint(keep_dleq=require_dleq) for p in selected.send]
        return SendResponse(keep=selected.keep, send=send)

    async def send(
        self,
        amount: int,
        proofs: list[Proof],
        *,
        keyset_id: str | None = None,
        include_fees: bool = False,
        send_policy: OutputPolicy | None = None,
        keep_policy: OutputPolicy | None = None,
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> SendResponse:
        """Split *proofs* so exactly *amount* can be handed to a receiver.

        An exact offline selection is tried first when nothing requires new
        outputs; otherwise the selected proofs are swapped for send and
        change outputs.

        Args:
            amount: Amount the receiver gets.
            proofs: Proofs available to spend.
            keyset_id: Keyset for the new outputs (cheapest when omitted).
            include_fees: Add the receiver's swap fee to the send outputs.
            send_policy: Output policy for the send side.
            keep_policy: Output policy for the change side.
            on_counters_reserved: Called with the reserved counters.

        Returns:
            ``keep`` holds the change plus every unselected proof.

        Raises:
            InsufficientFundsError: If the proofs cannot cover the send.
            InvalidConfigurationError: On inconsistent policies.
            MintError: If the swap fails.
        """
        default = self.default_output_type()
        send_policy = send_policy or default
        keep_policy = keep_policy or default

        offline = self._try_send_offline(amount, proofs, keyset_id, include_fees, send_policy, keep_policy)
        if offline is not None:
            return offline

        keyset = self._keyset(keyset_id)
        send_spec = self._planner.configure(amount, keyset, send_policy, include_fees=include_fees)

        selected = self.select_proofs_to_send(proofs, send_spec.amount, include_fees=True)
        if not selected.send:
            raise ErrNotEnoughFunds

        selected_sum = sum_proofs(selected.send)
        swap_fee = self.get_fees_for_proofs(selected.send)
        change = selected_sum - swap_fee - send_spec.amount
        if change < 0:
            logger.debug(
                "Swap underfunded: selected=%d fee=%d target=%d", selected_sum, swap_fee, send_spec.amount
            )
            raise ErrNotEnoughFundsForSwap

        keep_spec = self._planner.configure(change, keyset, keep_policy, proofs_we_have=selected.keep)
        (send_spec, keep_spec), _ = await self._planner.assign_counters(
            keyset.id, send_spec, keep_spec, on_counters_reserved=on_counters_reserved
        )
        send_outputs = self._planner.build(send_spec, keyset)
        keep_outputs = self._planner.build(keep_spec, keyset)

        transaction = assemble(selected.send, keep_outputs, send_outputs)
        with self._track("swap"):
            signatures = await self._transport.swap(transaction.payload)
        keep_proofs, send_proofs = transaction.unpack(signatures, keyset)

        logger.debug(
            "Send completed: keep=%s send=%s unselected=%d",
            [p.amount for p in keep_proofs],
            [p.amount for p in send_proofs],
            len(selected.keep),
        )
        return SendResponse(keep=[*keep_proofs, *selected.keep], send=send_proofs)

    def _try_send_offline(
        self,
        amount: int,
        proofs: list[Proof],
        keyset_id: str | None,
        include_fees: bool,
        send_policy: OutputPolicy,
        keep_policy: OutputPolicy,
    ) -> SendResponse | None:
        reasons: list[str] = []
        if keyset_id:
            reasons.append("keyset override")
        if isinstance(self.default_output_type(), DeterministicOutputs):
            reasons.append("wallet default is deterministic")
        if not is_plain_random(send_policy):
            reasons.append("non-default send output type")
        if not is_plain_random(keep_policy):
            reasons.append("non-default keep output type")
        if reasons:
            logger.debug("Send requires a swap: %s", ", ".join(reasons))
            return None

        try:
            result = self.send_offline(amount, proofs, include_fees=include_fees, exact_match=True)
            expected_fee = self.get_fees_for_proofs(result.send) if include_fees else 0
        except WalletError as exc:
            logger.debug("Exact offline selection failed: %s", exc.message)
            return None
        if result.send and sum_proofs(result.send) == amount + expected_fee:
            logger.info("Exact offline selection succeeded, no swap needed")
            return result
        return None

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def receive(
        self,
        token: Token,
        *,
        keyset_id: str | None = None,
        policy: OutputPolicy | None = None,
        proofs_we_have: Iterable[Proof] = (),
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> list[Proof]:
        """Swap a token's proofs for fresh proofs owned by this wallet.

        Returns:
            The new proofs, in planning order. Empty for a zero-value token.

        Raises:
            InvalidConfigurationError: If the token is for another mint or unit.
            MintError: If the swap fails.
        """
        if sanitize_url(token.mint) != self.mint_url:
            raise ErrWrongMint
        if token.unit != self.unit:
            raise ErrWrongUnit
        total = token.amount
        if total == 0:
            return []

        keyset = self._keyset(keyset_id)
        net_amount = total - self.get_fees_for_proofs(token.proofs)
        if net_amount <= 0:
            msg = f"Token amount {total} does not cover the swap fee"
            raise InsufficientFundsError(msg)
        spec = self._planner.configure(
            net_amount, keyset, policy or self.default_output_type(), proofs_we_have=proofs_we_have
        )
        (spec,), _ = await self._planner.assign_counters(
            keyset.id, spec, on_counters_reserved=on_counters_reserved
        )
        outputs = self._planner.build(spec, keyset)

        transaction = assemble(token.proofs, outputs, [])
        with self._track("swap"):
            signatures = await self._transport.swap(transaction.payload)
        received, _ = transaction.unpack(signatures, keyset)
        logger.debug("Receive completed: %s", [p.amount for p in received])
        return received

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    async def create_mint_quote(self, amount: int, description: str | None = None) -> MintQuote:
        """Ask the mint for an invoice to mint *amount*."""
        quote = await self._transport.create_mint_quote(amount, self.unit, description)
        return replace(quote, amount=quote.amount or amount, unit=quote.unit or self.unit)

    async def mint_proofs(
        self,
        amount: int,
        quote: str | MintQuote,
        *,
        keyset_id: str | None = None,
        policy: OutputPolicy | None = None,
        proofs_we_have: Iterable[Proof] = (),
        on_counters_reserved: CountersReservedListener | None = None,
    ) -> list[Proof]:
        """Mint *amount* against a paid quote.

        Raises:
            InvalidConfigurationError: If *amount* is not positive.
            MintError: If the mint fails or returns the wrong signature count.
        """
        if amount <= 0:
            raise ErrInvalidMintAmount
        keyset = self._keyset(keyset_id)
        spec = self._planner.configure(
            amount, keyset, policy or self.default_output_type(), proofs_we_have=proofs_we_have
        )
        (spec,), _ = await self._planner.assign_counters(
            keyset.id, spec, on_counters_reserved=on_counters_reserved
        )
        outputs = self._planner.build(spec, keyset)

        quote_id = quote if isinstance(quote, str) else quote.quote
        payload = MintPayload(quote=quote_id, outputs=[o.blinded_message for o in outputs])
        with self._track("mint"):
            signatures = await self._transport.mint(payload)
        if len(signatures) != len(outputs):
            logger.warning("Mint returned %d signatures, expected %d", len(signatures), len(outputs))
            raise ErrSignatureCount

        logger.debug("Mint completed: %s", [o.blinded_message.amount for o in outputs])
        return [o.to_proof(s, keyset) for o, s in zip(outputs, signatures, strict=True)]

    # ------------------------------------------------------------------
    # Melt
    # ------------------------------------------------------------------

    async def create_melt_quote(self, request: str) -> MeltQuote:
        """Ask the mint for a quote to pay the bolt11 invoice *request*."""
        return await self._transport.create_melt_quote(request, self.unit)

    async def melt_proofs(
        self,
        quote: MeltQuote,
        proofs: list[Proof],
        *,
        keyset_id: str | None = None,
        policy: OutputPolicy | None = None,
        on_counters_reserved: CountersReservedListener | None = None,
        on_change_outputs_created: ChangeOutputsListener | None = None,
    ) -> MeltProofsResponse:
        """Pay a melt quote with *proofs*, reclaiming unused fee reserve.

        Zero-amount blanks are attached for any amount above the quote so
        the mint can return Lightning fee change.

        Raises:
            InvalidConfigurationError: For custom output policies with change.
            MintError: If the melt fails or returns too much change.
        """
        keyset = self._keyset(keyset_id)
        fee_reserve = sum_proofs(proofs) - quote.amount
        outputs: list[OutputDataLike] = []
        if fee_reserve > 0:
            count = math.ceil(math.log2(fee_reserve)) or 1
            logger.debug("Creating %d blanks for fee reserve %d", count, fee_reserve)
            outputs = await self._planner.plan_blanks(
                count,
                keyset,
                policy or self.default_output_type(),
                on_counters_reserved=on_counters_reserved,
            )

        payload = MeltPayload(
            quote=quote.quote,
            inputs=[p.prepared_for_mint() for p in proofs],
            outputs=[o.blinded_message for o in outputs],
        )
        blanks = MeltBlanks(payload=payload, output_data=outputs, keyset=keyset, quote=quote)
        await self._events.change_outputs_created(blanks, on_change_outputs_created)
        return await self.complete_melt(blanks)

    async def complete_melt(self, blanks: MeltBlanks) -> MeltProofsResponse:
        """Send (or re-send) a melt and unblind any change.

        Use with the blanks handed to ``on_change_outputs_created`` to finish
        a melt that was still pending.

        Raises:
            MintError: If the melt fails or returns more change than blanks.
        """
        with self._track("melt"):
            response = await self._transport.melt(blanks.payload)
        if len(response.change) > len(blanks.output_data):
            logger.warning(
                "Mint returned %d change signatures for %d blanks",
                len(response.change),
                len(blanks.output_data),
            )
            raise ErrTooMuchChange
        change = [
            blanks.output_data[i].to_proof(signature, blanks.keyset)
            for i, signature in enumerate(response.change)
        ]
        logger.debug("Melt completed: change=%s", [p.amount for p in change])
        return MeltProofsResponse(quote=blanks.quote.merged_with(response), change=change)

    # ------------------------------------------------------------------
    # Restore and state
    # ------------------------------------------------------------------

    async def restore(self, start: int, count: int, keyset_id: str | None = None) -> RestoreResult:
        """Recover proofs for counters ``start .. start + count - 1``.

        Raises:
            InvalidConfigurationError: If the wallet has no seed.
            MintError: If the restore call fails.
        """
        if self._seed is None:
            raise ErrSeedRequired
        keyset = self._keyset(keyset_id)
        outputs = OutputData.create_deterministic([0] * count, self._seed, start, keyset)

        with self._track("restore"):
            known, signatures = await self._transport.restore([o.blinded_message for o in outputs])
        if len(known) != len(signatures):
            msg = f"Mint returned {len(signatures)} signatures for {len(known)} restored outputs"
            raise MintError(msg)
        by_b: dict[str, BlindedSignature] = {o.b_: s for o, s in zip(known, signatures, strict=True)}

        result = RestoreResult()
        for offset, output in enumerate(outputs):
            signature = by_b.get(output.blinded_message.b_)
            if signature is None:
                continue
            result.last_counter = start + offset
            result.proofs.append(output.to_proof(signature, keyset))
        return result

    async def batch_restore(
        self,
        gap_limit: int | None = None,
        batch_size: int | None = None,
        counter: int = 0,
        keyset_id: str | None = None,
    ) -> RestoreResult:
        """Restore batch after batch until *gap_limit* counters come back empty.

        The counter source is advanced past the last restored counter so new
        outputs never reuse a recovered index.
        """
        gap_limit = gap_limit or self._config.restore.gap_limit
        batch_size = batch_size or self._config.restore.batch_size
        required_empty = math.ceil(gap_limit / batch_size)
        keyset = self._keyset(keyset_id)

        result = RestoreResult()
        empty_batches = 0
        while empty_batches < required_empty:
            batch = await self.restore(counter, batch_size, keyset.id)
            if batch.proofs:
                empty_batches = 0
                result.proofs.extend(batch.proofs)
                result.last_counter = batch.last_counter
            else:
                empty_batches += 1
            counter += batch_size

        if result.last_counter is not None:
            try:
                await self._counters.advance(keyset.id, result.last_counter + 1)
            except CounterCapabilityError:
                logger.warning(
                    "Counter source cannot advance; keyset %s must resume after counter %d",
                    keyset.id,
                    result.last_counter,
                )
        logger.info("Restored %d proofs on keyset %s", len(result.proofs), keyset.id)
        return result

    async def check_proofs_states(self, proofs: list[Proof]) -> list[ProofStateInfo]:
        """Spend states for *proofs*, in the same order.

        Raises:
            MintError: If the mint omits a state.
        """
        ys = [point_to_hex(hash_to_curve(p.secret.encode("utf-8"))) for p in proofs]
        with self._track("check_state"):
            states = await self._transport.check_state(ys)
        by_y = {s.y: s for s in states}
        missing = [y for y in ys if y not in by_y]
        if missing:
            msg = f"Mint did not return a state for {len(missing)} proofs"
            raise MintError(msg)
        return [by_y[y] for y in ys]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _keyset(self, keyset_id: str | None) -> Keyset:
        return self._keychain.get_keyset(keyset_id or self._config.keyset_id or None)

    @contextlib.contextmanager
    def _track(self, operation: str) -> Iterator[None]:
        if self._metrics is None:
            yield
            return
        with self._metrics.track_operation(operation):
            yield
