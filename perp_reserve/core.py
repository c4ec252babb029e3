"""
Core types and pure functions for the perpetual tranche reserve.

This module provides the foundational data structures and protocols:
1. Protocols: AssetView for read-only ledger access, plus the external
   PricingStrategy, FeeStrategy and DepositBondRegistry collaborators
2. Immutable data structures: Move, PendingTransaction, Transaction, Asset
3. Events: Transfer, ReserveSynced, UpdatedMatureTrancheBalance
4. Exceptions: ReserveError and domain-specific error types
5. Asset factories: Functions to create the standard asset types

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_EVEN, getcontext
from enum import Enum
import copy
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, Union, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Reserve accounting requires deterministic Decimal arithmetic.
# The global context is configured at module load time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Fixed-point products and quotients are computed on scaled integers in
# fixed_point.py and never depend on this precision.
#
_RESERVE_DECIMAL_CONTEXT = getcontext()
_RESERVE_DECIMAL_CONTEXT.prec = 50
_RESERVE_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for minting and burning.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Every asset in the reserve uses 18 fractional digits.
FIXED_POINT_DECIMALS = 18
FIXED_POINT_QUANTUM = Decimal(10) ** -FIXED_POINT_DECIMALS

# Price of the mature collateral. Rebases change its balance, never its price.
COLLATERAL_PRICE = Decimal("1")

# Asset type constants
ASSET_TYPE_COLLATERAL = "COLLATERAL"
ASSET_TYPE_TRANCHE = "TRANCHE"
ASSET_TYPE_PERP = "PERP"
ASSET_TYPE_FEE_TOKEN = "FEE_TOKEN"

ZERO = Decimal("0")
ONE = Decimal("1")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific asset.
Positions = Dict[str, Decimal]

# Mapping from asset symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for an asset (bond linkage, reserve composition, etc.)
AssetState = Dict[str, Any]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class ReserveError(Exception):
    """Base exception for all reserve-related errors."""
    pass


class UnacceptableBurnAmt(ReserveError):
    """Raised when a burn amount is zero, exceeds the caller's balance, or supply is zero."""

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(f"UnacceptableBurnAmt({requested}, {available})")


class ExpectedSupplyReduction(ReserveError):
    """Raised when a redemption would leave the claim supply higher than the burn allows."""
    pass


class UnacceptableRollover(ReserveError):
    """Raised when a rollover names a token pair the reserve cannot accept."""
    pass


class UnauthorizedCall(ReserveError):
    """Raised when the caller is not permitted to invoke an entry point."""
    pass


class Paused(ReserveError):
    """Raised when a mutating entry point is invoked while the reserve is paused."""
    pass


class InsufficientReserve(ReserveError):
    """Raised when a reserve debit exceeds the reserve's live balance."""
    pass


class InsufficientBalance(ReserveError):
    """Raised when a move would take a wallet balance below the asset's minimum."""
    pass


class InsufficientAllowance(ReserveError):
    """Raised when a pulled move exceeds the allowance granted to its spender."""
    pass


class AssetNotRegistered(ReserveError):
    """Raised when operating on an asset that has not been registered."""
    pass


class WalletNotRegistered(ReserveError):
    """Raised when operating on a wallet that has not been registered."""
    pass


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    NOOP: Transaction was empty; nothing was logged.

    Validation failures raise instead of returning a result.
    """
    APPLIED = "applied"
    NOOP = "noop"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"     # Redeem or rollover requested by an account
    SYSTEM = "system"               # Issuance, rebases, initial setup


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Transfer:
    """Standard transfer notification. Mints come from, and burns go to, SYSTEM_WALLET."""
    asset: str
    source: str
    dest: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class ReserveSynced:
    """Reserve balance of an asset after a mutating call touched it."""
    asset: str
    balance: Decimal


@dataclass(frozen=True, slots=True)
class UpdatedMatureTrancheBalance:
    """New notional (par) balance of the mature collateral."""
    balance: Decimal


Event = Union[Transfer, ReserveSynced, UpdatedMatureTrancheBalance]


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: USER_ACTION or SYSTEM
        source_id: Account or component that requested the transaction
        asset_symbol: Asset that triggered this (if applicable)
        event_type: Operation name (e.g., "REDEEM", "ROLLOVER", "REBASE")
    """
    origin_type: OriginType
    source_id: str
    asset_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.asset_symbol:
            parts.append(f"asset={self.asset_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# ASSET STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetStateChange:
    """
    Record of an asset state change, with complete before/after snapshots.

    Attributes:
        asset: Symbol of the asset whose state changed
        old_state: Complete state before the change
        new_state: Complete state after the change
    """
    asset: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for every field that differs."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of an asset between two wallets.

    Attributes:
        quantity: The amount to transfer (must be a finite, positive Decimal).
        asset: The symbol of the asset being transferred.
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        spender: Wallet pulling the funds on the source's behalf. When set,
                 the move consumes allowance[source][spender][asset].
    """
    quantity: Decimal
    asset: str
    source: str
    dest: str
    contract_id: str
    spender: Optional[str] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Move asset cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.asset}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction before execution - represents INTENT.

    Built by the pure compute_* functions and submitted to AssetLedger.execute().
    Events are the non-transfer notifications the transaction emits once applied;
    Transfer events are derived from the moves by the ledger.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[AssetStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    events: Tuple[Event, ...] = ()

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no state changes."""
        return not self.moves and not self.state_changes

    def __repr__(self) -> str:
        return (f"PendingTransaction({len(self.moves)} moves, "
                f"{len(self.state_changes)} deltas, {len(self.events)} events, {self.origin})")


def build_transaction(
    view: AssetView,
    moves: List[Move],
    state_changes: Optional[List[AssetStateChange]] = None,
    events: Optional[List[Event]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, state changes and events.

    State snapshots are deep-copied so later mutation of the caller's dicts
    cannot leak into the transaction.
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.SYSTEM,
            source_id="reserve",
        )

    copied_changes: Tuple[AssetStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            AssetStateChange(
                asset=sc.asset,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        events=tuple(events or ()),
    )


def empty_pending_transaction(view: AssetView) -> PendingTransaction:
    """Create an empty PendingTransaction (no moves, no state changes)."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.SYSTEM, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Transfers applied
        state_changes: Asset state changes applied
        events: Every event emitted, Transfer events first, in move order
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[AssetStateChange, ...]
    events: Tuple[Event, ...]
    origin: TransactionOrigin
    timestamp: datetime
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes:
            raise ValueError("Transaction must have moves or state_changes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
            f"├{bar}┤",
            f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity} {move.asset}: {move.source} → {move.dest}')}│")
        notifications = [e for e in self.events if not isinstance(e, Transfer)]
        if notifications:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Events (' + str(len(notifications)) + '):')}│")
            for event in notifications:
                lines.append(f"│{pad('   ' + repr(event))}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.asset + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[AssetState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> AssetState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of a token held or moved by the reserve.

    Attributes:
        symbol: Short identifier (e.g., "AMPL", "SPOT", "B1-A").
        name: Human-readable name.
        asset_type: COLLATERAL, TRANCHE, PERP or FEE_TOKEN.
        min_balance: Minimum allowed balance in any wallet.
        decimal_places: Fractional digits kept by this asset.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    asset_type: str
    min_balance: Decimal = ZERO
    decimal_places: int = FIXED_POINT_DECIMALS
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Asset symbol cannot be empty")
        if self.symbol == SYSTEM_WALLET:
            raise ValueError(f"Asset symbol cannot be '{SYSTEM_WALLET}'")

    @property
    def state(self) -> AssetState:
        """Return the asset's state as a new mutable dict."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """Floor a value to this asset's precision."""
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(Decimal(10) ** -self.decimal_places, rounding=ROUND_FLOOR)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class AssetView(Protocol):
    """
    Read-only interface to ledger state.

    Functions accepting an AssetView declare their read-only intent. The
    AssetLedger implements this protocol alongside its mutation methods;
    FakeView in the tests is a purely immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, asset_symbol: str) -> Decimal:
        """Return the balance of an asset in a wallet (0 if none)."""
        ...

    def get_allowance(self, owner: str, spender: str, asset_symbol: str) -> Decimal:
        """Return how much of owner's asset the spender may pull."""
        ...

    def get_asset_state(self, asset_symbol: str) -> AssetState:
        """Return a copy of the asset's internal state."""
        ...

    def get_asset(self, symbol: str) -> Asset:
        """Return the Asset object for a given symbol."""
        ...

    def get_positions(self, asset_symbol: str) -> Positions:
        """Return all non-zero positions for an asset across wallets."""
        ...

    def total_supply(self, asset_symbol: str) -> Decimal:
        """Return the circulating supply (every wallet except SYSTEM_WALLET)."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...


@runtime_checkable
class PricingStrategy(Protocol):
    """Prices a tranche in the reserve's common unit. Zero means untradeable."""

    def compute_price(self, asset_symbol: str) -> Decimal:
        ...


@dataclass(frozen=True, slots=True)
class FeeQuote:
    """
    Absolute, signed fee for a mint or burn.

    Attributes:
        amount: Positive charges the account, negative rebates it.
        asset: Asset the fee is settled in (the perp itself or a fee token).
        protocol_amount: Extra non-negative fee forwarded to the protocol wallet.
    """
    amount: Decimal
    asset: str
    protocol_amount: Decimal = ZERO

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if not isinstance(self.protocol_amount, Decimal):
            object.__setattr__(self, 'protocol_amount', Decimal(str(self.protocol_amount)))
        if not self.asset or not self.asset.strip():
            raise ValueError("FeeQuote asset cannot be empty")
        if self.protocol_amount < 0:
            raise ValueError(f"protocol_amount must be non-negative, got {self.protocol_amount}")


@runtime_checkable
class FeeStrategy(Protocol):
    """Signed fee schedule consumed by redemption and rollover."""

    fee_token: str

    def compute_burn_fee(self, amount: Decimal) -> FeeQuote:
        ...

    def compute_rollover_fee_perc(self) -> Decimal:
        ...


@dataclass(frozen=True, slots=True)
class Bond:
    """
    A tranched bond. Tranches are ordered most senior first.

    Attributes:
        symbol: Bond identifier
        maturity: When the bond matures
        tranches: Tranche asset symbols, most senior first
    """
    symbol: str
    maturity: datetime
    tranches: Tuple[str, ...]

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Bond symbol cannot be empty")
        if not self.tranches:
            raise ValueError(f"Bond {self.symbol} must have at least one tranche")
        if len(set(self.tranches)) != len(self.tranches):
            raise ValueError(f"Bond {self.symbol} has duplicate tranches")

    def tranche_index(self, tranche_symbol: str) -> Optional[int]:
        """Return the seniority index of a tranche, or None if it is not part of this bond."""
        try:
            return self.tranches.index(tranche_symbol)
        except ValueError:
            return None


@runtime_checkable
class DepositBondRegistry(Protocol):
    """Source of truth for bonds and the currently designated deposit bond."""

    def deposit_bond(self) -> Bond:
        ...

    def get_bond(self, symbol: str) -> Optional[Bond]:
        ...


# ============================================================================
# ASSET FACTORIES
# ============================================================================

def fee_token(symbol: str, name: str) -> Asset:
    """
    Create an external fee token.

    The reserve does not control its supply, so negative fees in this
    token can only be paid out of the reserve wallet's own holding.
    """
    return Asset(
        symbol=symbol,
        name=name,
        asset_type=ASSET_TYPE_FEE_TOKEN,
    )
