"""
ledger.py - Custody Ledger for Bonding-Curve Pools

The Ledger class is the custody substrate the curve engine runs on. It is the
only module that mutates balances or unit state.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves and state changes, or none)
    - Checks every move source against the supplied Authority
    - Opens custody locations (wallet, unit) on demand
    - Keeps a logical clock used to stamp events
    - Always validates and always logs
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .core import (
    # Types
    Move, Transaction, Unit, Authority,
    PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, InsufficientFunds, Unauthorized,
    UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state, build_transaction,
)


class Ledger:
    """
    Integer custody ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    A wallet can only receive a unit once a custody location for that pair
    exists (create_custody). SYSTEM_WALLET holds custody for every unit and
    is exempt from balance checks; it is the issuance source.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Ledger instance.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(reserve_currency("SOL", "Solana"))
        ledger.create_custody("alice", "SOL")
        ledger.create_custody("bob", "SOL")
        ledger.move_value("alice", "bob", "SOL", 100, Authority.of("alice"))
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
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.custody: Set[Tuple[str, str]] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.last_rejection: str = ""
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # unit -> {wallet -> quantity}, non-zero entries only
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Returns 0 for wallets that were never registered, since an unopened
        custody location holds nothing.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if wallet_id not in self.registered_wallets:
            return 0
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        unit_obj = self.units[unit_symbol]
        return copy.deepcopy(unit_obj.state) if unit_obj.state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def has_unit(self, symbol: str) -> bool:
        return symbol in self.units

    def has_custody(self, wallet_id: str, unit_symbol: str) -> bool:
        """True if wallet_id can hold unit_symbol."""
        return wallet_id == SYSTEM_WALLET or (wallet_id, unit_symbol) in self.custody

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a unit across all non-system wallets.

        SYSTEM_WALLET runs negative by exactly the amount issued, so this is
        the circulating supply.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            self.balances[w].get(unit_symbol, 0)
            for w in sorted(self.registered_wallets) if w != SYSTEM_WALLET
        )

    def verify_double_entry(self, expected_supplies: Dict[str, int] = None) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Every move debits and credits the same quantity, so the sum over all
        wallets including SYSTEM_WALLET is always zero. With expected_supplies,
        circulating supply is also compared against the expected totals.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Circulating supply for each unit
            - 'discrepancies': List[Dict] - Details of any violations

        Example:
            result = ledger.verify_double_entry({"PUMP": 10**15})
            assert result['valid'], result['discrepancies']
        """
        supplies: Dict[str, int] = {}
        discrepancies: List[Dict[str, Any]] = []

        for unit_symbol in sorted(self.units):
            circulating = self.total_supply(unit_symbol)
            supplies[unit_symbol] = circulating
            net = circulating + self.balances[SYSTEM_WALLET].get(unit_symbol, 0)
            if net != 0:
                discrepancies.append({
                    'unit': unit_symbol,
                    'expected': 0,
                    'actual': net,
                    'difference': abs(net),
                    'error': 'net balance across wallets is not zero',
                })
            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                if circulating != expected:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': circulating,
                        'difference': abs(circulating - expected),
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': 0,
                        'difference': abs(expected),
                        'error': 'unit not registered',
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
        Advance the ledger's logical clock to a new time.

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
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def create_custody(self, owner: str, unit_symbol: str) -> Tuple[str, str]:
        """
        Open a custody location so `owner` can hold `unit_symbol`.

        Idempotent: an existing location is returned unchanged. The wallet is
        registered on first use.

        Returns:
            The (owner, unit_symbol) custody handle

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if owner not in self.registered_wallets:
            self.register_wallet(owner)
        self.custody.add((owner, unit_symbol))
        return owner, unit_symbol

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: This bypasses double-entry accounting and is only available
        in test mode. Opens custody for the pair if needed.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise ValueError(f"quantity must be int, got {type(quantity)}")
        self.create_custody(wallet_id, unit_symbol)
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def move_value(
        self,
        source: str,
        dest: str,
        unit_symbol: str,
        amount: int,
        authority: Authority,
    ) -> Transaction:
        """
        Move `amount` of a unit from source to dest as a single transaction.

        Raises:
            Unauthorized: If authority cannot debit source
            InsufficientFunds: If source holds less than amount
            LedgerError: If the ledger rejects the move for any other reason
        """
        if not authority.can_debit(source):
            raise Unauthorized(f"{authority!r} cannot debit {source}")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if source != SYSTEM_WALLET:
            available = self.get_balance(source, unit_symbol)
            if available < amount:
                raise InsufficientFunds(
                    f"{source} holds {available} {unit_symbol}, needs {amount}"
                )

        move = Move(amount, unit_symbol, source, dest, f"transfer_{self._next_sequence}")
        origin = TransactionOrigin(OriginType.USER_ACTION, source, unit_symbol, "TRANSFER")
        pending = build_transaction(self, [move], origin=origin)
        result = self.execute(pending, authority)
        if result != ExecuteResult.APPLIED:
            raise LedgerError(f"move_value {result.value}: {self.last_rejection}")
        return self.transaction_log[-1]

    def execute(
        self,
        pending: PendingTransaction,
        authority: Optional[Authority] = None,
    ) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        Units and custody locations are opened first so the moves can be
        validated against them; if validation fails they are rolled back and
        nothing is applied. Execution is idempotent on intent_id.

        Validation covers:
        - Authority (every move source must be debitable, when given)
        - Unit registration and custody at both ends of every move
        - Transfer rules
        - Balance constraints (min/max balance limits)
        - Timestamp (no future-dated transactions)
        - State changes (old_state must equal current state)

        Args:
            pending: PendingTransaction to execute
            authority: Capability over move sources. None is only for trusted
                internal callers and skips the authority check.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if the intent was already executed
            ExecuteResult.REJECTED if validation failed (see last_rejection)
        """
        self.last_rejection = ""
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        new_units: List[str] = []
        new_wallets: List[str] = []
        new_custody: List[Tuple[str, str]] = []

        def rollback(reason: str) -> ExecuteResult:
            for sym in new_units:
                del self.units[sym]
            for slot in new_custody:
                self.custody.discard(slot)
            for wallet_id in new_wallets:
                self.registered_wallets.discard(wallet_id)
                del self.balances[wallet_id]
            self.last_rejection = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        for unit in pending.units_to_create:
            if unit.symbol in self.units:
                return rollback(f"unit already registered: {unit.symbol}")
            self.units[unit.symbol] = unit
            new_units.append(unit.symbol)

        for wallet_id, unit_symbol in pending.custody_to_create:
            if unit_symbol not in self.units:
                return rollback(f"unit not registered: {unit_symbol}")
            if wallet_id not in self.registered_wallets:
                self.registered_wallets.add(wallet_id)
                self.balances[wallet_id] = defaultdict(int)
                new_wallets.append(wallet_id)
            if (wallet_id, unit_symbol) not in self.custody:
                self.custody.add((wallet_id, unit_symbol))
                new_custody.append((wallet_id, unit_symbol))

        valid, reason = self._validate_pending(pending, authority)
        if not valid:
            return rollback(reason)

        sequence = self._next_sequence
        self._next_sequence += 1
        exec_id = self._generate_exec_id(sequence)

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=exec_id,
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
            custody_to_create=pending.custody_to_create,
        )

        self._execute_moves(tx.moves)

        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            for unit in tx.units_to_create:
                print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the boxed transaction with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(
        self,
        pending: PendingTransaction,
        authority: Optional[Authority],
    ) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Returns:
            Tuple of (success, reason); reason is "" on success
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if authority is not None and not authority.can_debit(move.source):
                return False, f"unauthorized debit of {move.source}"
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.has_custody(move.source, move.unit_symbol):
                return False, f"no custody: {move.source}/{move.unit_symbol}"
            if not self.has_custody(move.dest, move.unit_symbol):
                return False, f"no custody: {move.dest}/{move.unit_symbol}"

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        # SYSTEM_WALLET is the issuance source and may go negative
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_sym]
            proposed = self.balances[wallet].get(unit_sym, 0) + delta
            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        # Optimistic concurrency: a change built from stale state is refused
        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            current_state = self.units[sc.unit].state
            old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
            if old_state != current_state:
                stale = sorted(
                    key for key in set(old_state) | set(current_state)
                    if old_state.get(key) != current_state.get(key)
                )
                return False, f"stale state for {sc.unit}: {', '.join(stale)}"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        for move in moves:
            new_src_balance = self.balances[move.source].get(move.unit_symbol, 0) - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = self.balances[move.dest].get(move.unit_symbol, 0) + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a fully independent deep copy of this ledger.

        Used to compare ledger state before and after a failed operation.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.last_rejection = self.last_rejection

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }

        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.custody = self.custody.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(int, bals)

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned

    def snapshot(self) -> Dict[str, Any]:
        """Comparable snapshot of balances, custody and unit state."""
        return {
            'balances': {
                wallet: {sym: qty for sym, qty in bals.items() if qty != 0}
                for wallet, bals in self.balances.items()
            },
            'custody': set(self.custody),
            'units': {symbol: unit.state for symbol, unit in self.units.items()},
            'log_length': len(self.transaction_log),
        }
