"""
ledger.py - Token Bookkeeping for the Reserve

The AssetLedger holds every balance and allowance the reserve engine touches
and is the only module that mutates them.

Key responsibilities:
    - Implements the AssetView protocol for read-only access by pure functions
    - Executes transactions atomically (all moves succeed or none do)
    - Enforces allowances for pulled moves and minimum balances for every wallet
      except SYSTEM_WALLET, the source of mints and sink of burns
    - Records every applied transaction and every emitted event
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Asset, Move, Transaction, PendingTransaction, Transfer, Event,
    ExecuteResult, Positions, AssetState, BalanceMap,
    # Constants
    SYSTEM_WALLET, ZERO,
    # Exceptions
    ReserveError, InsufficientBalance, InsufficientAllowance,
    AssetNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


class AssetLedger:
    """
    Balances, allowances and supply of every asset the reserve handles.

    Implements the AssetView protocol, so the ledger itself can be handed to
    the pure compute_* functions.

    Example:
        ledger = AssetLedger("main")
        ledger.register_asset(create_collateral_unit("AMPL", "Ampleforth"))
        ledger.register_wallet("alice")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "AMPL", SYSTEM_WALLET, "alice", "mint_ampl")
        ])
        ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Enable debug output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.assets: Dict[str, Asset] = {}
        self.registered_wallets: Set[str] = set()
        # owner -> spender -> asset -> amount
        self.allowances: Dict[str, Dict[str, Dict[str, Decimal]]] = defaultdict(
            lambda: defaultdict(dict)
        )
        self.transaction_log: List[Transaction] = []
        self.event_log: List[Event] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index asset -> {wallet -> quantity}
        self._positions_by_asset: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: ZERO)

    # ========================================================================
    # AssetView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, asset_symbol: str) -> Decimal:
        """
        Get the balance of an asset in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        return self.balances[wallet_id].get(asset_symbol, ZERO)

    def get_allowance(self, owner: str, spender: str, asset_symbol: str) -> Decimal:
        """Get how much of owner's asset the spender may still pull."""
        return self.allowances.get(owner, {}).get(spender, {}).get(asset_symbol, ZERO)

    def get_asset_state(self, asset_symbol: str) -> AssetState:
        """
        Get a deep copy of an asset's internal state.

        Raises:
            AssetNotRegistered: If asset is not registered
        """
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        return copy.deepcopy(self.assets[asset_symbol].state)

    def get_asset(self, symbol: str) -> Asset:
        """Return the Asset object for a given symbol."""
        if symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {symbol} not registered")
        return self.assets[symbol]

    def get_positions(self, asset_symbol: str) -> Positions:
        """Get all non-zero positions for an asset, SYSTEM_WALLET included."""
        return dict(self._positions_by_asset.get(asset_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_assets(self) -> List[str]:
        """List all registered asset symbols."""
        return sorted(self.assets.keys())

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, asset_symbol: str) -> Decimal:
        """
        Circulating supply of an asset: the sum over every wallet except SYSTEM_WALLET.

        Minting moves value out of SYSTEM_WALLET and burning moves it back,
        so the system balance is the negative of everything ever issued.
        """
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        return sum(
            (self.balances[w].get(asset_symbol, ZERO)
             for w in sorted(self.registered_wallets) if w != SYSTEM_WALLET),
            ZERO,
        )

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every asset sums to zero across all wallets, SYSTEM_WALLET included.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, Decimal] - circulating supply per asset
            - 'discrepancies': List[Dict] - assets whose wallet sum is non-zero
        """
        supplies = {}
        discrepancies = []
        for asset_symbol in sorted(self.assets):
            circulating = self.total_supply(asset_symbol)
            supplies[asset_symbol] = circulating
            system = self.balances[SYSTEM_WALLET].get(asset_symbol, ZERO)
            if circulating + system != ZERO:
                discrepancies.append({
                    'asset': asset_symbol,
                    'circulating': circulating,
                    'system': system,
                    'difference': circulating + system,
                })
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: ZERO)
        return wallet_id

    def register_asset(self, asset: Asset) -> None:
        """
        Register a new asset.

        Raises:
            ValueError: If asset symbol is already registered
        """
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            print(f"Registered: {asset.symbol} ({asset.name}) [{asset.asset_type}]")

    def approve(self, owner: str, spender: str, asset_symbol: str, amount: Decimal) -> None:
        """
        Set the amount of owner's asset that spender may pull (overwrites).

        Raises:
            WalletNotRegistered, AssetNotRegistered, ValueError (negative amount)
        """
        if owner not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {owner} not registered")
        if spender not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {spender} not registered")
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if amount < 0:
            raise ValueError(f"Allowance must be non-negative, got {amount}")
        self.allowances[owner][spender][asset_symbol] = amount

    def set_balance(self, wallet_id: str, asset_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance directly, keeping SYSTEM_WALLET as the counterparty.

        Only available in test mode. Production code mints through execute().

        Raises:
            ReserveError: If called when test_mode is False
        """
        if not self._test_mode:
            raise ReserveError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating AssetLedger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        delta = quantity - self.balances[wallet_id][asset_symbol]
        self.balances[wallet_id][asset_symbol] = quantity
        self._update_position_index(wallet_id, asset_symbol, quantity)
        if wallet_id != SYSTEM_WALLET:
            system_balance = self.balances[SYSTEM_WALLET][asset_symbol] - delta
            self.balances[SYSTEM_WALLET][asset_symbol] = system_balance
            self._update_position_index(SYSTEM_WALLET, asset_symbol, system_balance)

    def update_asset_state(self, asset_symbol: str, state_updates: AssetState) -> None:
        """
        Merge state_updates into an asset's state.

        Raises:
            AssetNotRegistered: If asset is not registered
        """
        if asset_symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {asset_symbol} not registered")
        old_asset = self.assets[asset_symbol]
        new_state = {**old_asset.state, **state_updates}
        self.assets[asset_symbol] = replace(old_asset, _frozen_state=_freeze_state(new_state))

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        The whole transaction is validated before anything is mutated, so a
        failure leaves balances, allowances, asset state and both logs untouched.

        Returns:
            ExecuteResult.APPLIED if applied
            ExecuteResult.NOOP if the pending transaction was empty

        Raises:
            AssetNotRegistered, WalletNotRegistered: unknown asset or wallet
            InsufficientAllowance: a pulled move exceeds its spender's allowance
            InsufficientBalance: a move takes a wallet below the asset minimum
            ValueError: the pending transaction is timestamped in the future
        """
        if pending.is_empty():
            return ExecuteResult.NOOP

        self._validate_pending(pending)

        sequence = self._next_sequence
        self._next_sequence += 1

        transfers = tuple(
            Transfer(asset=m.asset, source=m.source, dest=m.dest, amount=m.quantity)
            for m in pending.moves
        )
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            events=transfers + pending.events,
            origin=pending.origin,
            timestamp=pending.timestamp,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            old_asset = self.assets[sc.asset]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.assets[sc.asset] = replace(old_asset, _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.event_log.extend(tx.events)

        if self.verbose:
            print(f"{tx!r}\n  ✓ APPLIED")
        return ExecuteResult.APPLIED

    def _validate_pending(self, pending: PendingTransaction) -> None:
        """
        Validate a pending transaction against every constraint, raising on the first failure.

        Moves are simulated in order against scratch balances and allowances,
        so a later move may spend what an earlier move delivered. For a pulled
        move the allowance is checked before the balance.
        """
        if pending.timestamp > self._current_time:
            raise ValueError(
                f"Transaction timestamp {pending.timestamp} is after ledger time {self._current_time}"
            )

        for sc in pending.state_changes:
            if sc.asset not in self.assets:
                raise AssetNotRegistered(f"Asset {sc.asset} not registered")

        scratch_balances: Dict[Tuple[str, str], Decimal] = {}
        scratch_allowances: Dict[Tuple[str, str, str], Decimal] = {}

        for move in pending.moves:
            if move.asset not in self.assets:
                raise AssetNotRegistered(f"Asset {move.asset} not registered")
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    raise WalletNotRegistered(f"Wallet {wallet} not registered")

            asset = self.assets[move.asset]

            if move.spender is not None and move.spender != move.source:
                key = (move.source, move.spender, move.asset)
                allowance = scratch_allowances.get(
                    key, self.get_allowance(move.source, move.spender, move.asset)
                )
                if move.quantity > allowance:
                    raise InsufficientAllowance(
                        f"insufficient allowance: {move.spender} may pull {allowance} "
                        f"{move.asset} from {move.source}, needs {move.quantity}"
                    )
                scratch_allowances[key] = allowance - move.quantity

            src_key = (move.source, move.asset)
            dst_key = (move.dest, move.asset)
            src_balance = scratch_balances.get(src_key, self.balances[move.source].get(move.asset, ZERO))
            proposed = asset.round(src_balance - move.quantity)
            # SYSTEM_WALLET is exempt: it is the source of every mint
            if move.source != SYSTEM_WALLET and proposed < asset.min_balance:
                raise InsufficientBalance(
                    f"transfer amount exceeds balance: {move.source} holds {src_balance} "
                    f"{move.asset}, needs {move.quantity}"
                )
            scratch_balances[src_key] = proposed
            dst_balance = scratch_balances.get(dst_key, self.balances[move.dest].get(move.asset, ZERO))
            scratch_balances[dst_key] = asset.round(dst_balance + move.quantity)

    def _update_position_index(self, wallet_id: str, asset_symbol: str, quantity: Decimal) -> None:
        if quantity != ZERO:
            self._positions_by_asset[asset_symbol][wallet_id] = quantity
        else:
            self._positions_by_asset[asset_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply validated moves to balances, allowances and the position index."""
        for move in moves:
            asset = self.assets[move.asset]
            if move.spender is not None and move.spender != move.source:
                spent = self.allowances[move.source][move.spender]
                spent[move.asset] = spent.get(move.asset, ZERO) - move.quantity
            new_src_balance = asset.round(self.balances[move.source][move.asset] - move.quantity)
            self.balances[move.source][move.asset] = new_src_balance
            self._update_position_index(move.source, move.asset, new_src_balance)
            new_dst_balance = asset.round(self.balances[move.dest][move.asset] + move.quantity)
            self.balances[move.dest][move.asset] = new_dst_balance
            self._update_position_index(move.dest, move.asset, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> AssetLedger:
        """
        Create a fully independent deep copy of this ledger.

        Logs are copied as lists of the same immutable records.
        """
        cloned = AssetLedger.__new__(AssetLedger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.assets = {
            symbol: replace(asset, _frozen_state=_freeze_state(copy.deepcopy(asset.state)))
            for symbol, asset in self.assets.items()
        }
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned.event_log = list(self.event_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: ZERO, bals)

        cloned.allowances = defaultdict(lambda: defaultdict(dict))
        for owner, by_spender in self.allowances.items():
            for spender, by_asset in by_spender.items():
                cloned.allowances[owner][spender] = dict(by_asset)

        cloned._positions_by_asset = defaultdict(dict)
        for asset_symbol, positions in self._positions_by_asset.items():
            cloned._positions_by_asset[asset_symbol] = dict(positions)

        return cloned
