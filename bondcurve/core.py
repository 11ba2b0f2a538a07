"""
Core types and pure functions for the bonding-curve custody substrate.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit, Authority
3. Exceptions: LedgerError, the custody errors, and the curve error taxonomy
4. Type aliases: Positions, BalanceMap, UnitState
5. Addressing: derive_address for deterministic custody locations
6. Unit factories: Functions to create standard unit types

All quantities are integers in minimal units (u64 range). Nothing in this
module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, getcontext, ROUND_HALF_EVEN
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, Iterable, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimals are only used for display and spot prices; settlement is integer.
#
_CURVE_DECIMAL_CONTEXT = getcontext()
_CURVE_DECIMAL_CONTEXT.prec = 50
_CURVE_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance. Exempt from balance validation.
SYSTEM_WALLET = "system"

UNIT_TYPE_RESERVE = "RESERVE"
UNIT_TYPE_CURVE_ASSET = "BONDING_CURVE_ASSET"

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1

# 1e9 whole units at 6 fractional digits.
DEFAULT_TOTAL_SUPPLY = 1_000_000_000_000_000
ASSET_DECIMAL_PLACES = 6
RESERVE_DECIMAL_PLACES = 9

# Cumulative units sold through the curve before the pool deactivates.
SALE_THRESHOLD = 800_000_000_000

# Seed tags for derived custody locations.
POOL_SEED = "bonding_curve"
RESERVE_ESCROW_SEED = "bonding_curve_reserve_escrow"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]

# Internal state for a unit (pool state for curve assets).
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Pure functions that build trades accept a LedgerView to declare that they
    only read. The Ledger implements this protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Return the balance of a unit in a wallet.

        Returns 0 when the wallet holds nothing of the unit.
        """
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...

    def has_unit(self, symbol: str) -> bool:
        """Return True if the unit is registered."""
        ...

    def has_custody(self, wallet_id: str, unit_symbol: str) -> bool:
        """Return True if the wallet has a custody location for the unit."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent).
    REJECTED: Transaction failed validation (balances, authority, stale state).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"     # Direct move_value call
    CONTRACT = "contract"           # Curve trade
    LAUNCH = "launch"               # Pool creation and mint
    MIGRATION = "migration"         # Post-curve withdrawal
    SYSTEM = "system"               # Issuance, funding


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would take a wallet balance below the unit's minimum."""
    pass


class Unauthorized(LedgerError):
    """Raised when the supplied authority cannot debit a move's source."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class CurveError(LedgerError):
    """Base exception for bonding-curve engine errors."""
    pass


class PoolInactive(CurveError):
    """Trade attempted on a deactivated pool."""
    pass


class PoolStillActive(CurveError):
    """Withdrawal attempted before the pool deactivated."""
    pass


class NotOwner(CurveError):
    """Withdrawal attempted by someone other than the issuer owner."""
    pass


class ArithmeticOverflow(CurveError):
    """Checked addition or multiplication left the u64 range."""
    pass


class CalculationError(CurveError):
    """Pricing formula produced an invalid result."""
    pass


class InvalidAmount(CurveError):
    """Trade amount was zero, negative, or not an integer."""
    pass


class InsufficientAssetBalance(CurveError, InsufficientFunds):
    """Asset-side checked subtraction underflowed or custody is short."""
    pass


class InsufficientReserveBalance(CurveError, InsufficientFunds):
    """Reserve-side checked subtraction underflowed or custody is short."""
    pass


# ============================================================================
# ADDRESSING
# ============================================================================

def derive_address(seed_tags: Iterable[str], key: str) -> str:
    """
    Derive a deterministic custody location from seed tags and a key.

    Same inputs always give the same address, so pools and escrows can be
    located again from the asset symbol alone. The first tag is kept as a
    readable prefix.

    Example:
        derive_address(("bonding_curve",), "PUMP")  ->  "bonding_curve:3f2a..."
    """
    tags = tuple(seed_tags)
    if not tags:
        raise ValueError("seed_tags cannot be empty")
    if not key or not key.strip():
        raise ValueError("key cannot be empty")
    content = "|".join(tags) + "#" + key
    digest = hashlib.sha256(content.encode()).hexdigest()[:16]
    return f"{tags[0]}:{digest}"


# ============================================================================
# AUTHORITY
# ============================================================================

@dataclass(frozen=True, slots=True)
class Authority:
    """
    Capability to debit a fixed set of wallets.

    Built once per operation and handed to Ledger.execute(); a move whose
    source is not in `signers` is rejected. There is no ambient authority.
    """
    signers: FrozenSet[str]

    @classmethod
    def of(cls, *wallets: str) -> Authority:
        return cls(frozenset(wallets))

    @classmethod
    def for_pool(cls, pool: Any) -> Authority:
        """Authority over a pool's asset custody and its reserve escrow."""
        return cls(frozenset((pool.pool_address, pool.reserve_escrow)))

    def join(self, other: Authority) -> Authority:
        return Authority(self.signers | other.signers)

    def can_debit(self, wallet_id: str) -> bool:
        return wallet_id in self.signers

    def __repr__(self) -> str:
        return f"Authority({', '.join(sorted(self.signers))})"


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (engine name, wallet, ...)
        unit_symbol: Symbol of the unit that triggered this (if applicable)
        event_type: Specific event within the source ("BUY", "SELL", ...)
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change with full before/after snapshots.

    The ledger rejects the change if old_state no longer matches the unit's
    current state, which serializes writers of the same pool.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for the fields that differ."""
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
    A single transfer of value between two wallets.

    Attributes:
        quantity: Amount in minimal units (positive int within u64).
        unit_symbol: The unit being transferred (e.g. "SOL", "PUMP").
        source: The wallet ID debited.
        dest: The wallet ID credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.quantity > U64_MAX:
            raise ValueError(f"Move quantity exceeds u64 range: {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and set iteration order.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{format(value.normalize(), 'f')}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
    custody_to_create: Tuple[Tuple[str, str], ...] = (),
) -> str:
    """
    Deterministic content hash of a transaction's intent.

    Built only from semantic content (no timestamps), so the same intent
    submitted twice is recognised as a duplicate.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")

    for wallet_id, unit_symbol in sorted(custody_to_create):
        content_parts.append(f"custody:{wallet_id}|{unit_symbol}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        content_parts.append(
            f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction description before execution - represents INTENT.

    Built by the pure compute_* functions and submitted to Ledger.execute(),
    which applies every part of it or none of it.

    Attributes:
        moves: Value transfers between wallets
        state_changes: Unit state changes (old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        units_to_create: Units to register before executing moves
        custody_to_create: (wallet, unit) custody locations to open if absent
        intent_id: Content-addressable hash (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    custody_to_create: Tuple[Tuple[str, str], ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin,
                self.units_to_create, self.custody_to_create,
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """True if there is nothing to move, change, or create."""
        return (not self.moves and not self.state_changes
                and not self.units_to_create and not self.custody_to_create)

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
    custody_to_create: Optional[Tuple[Tuple[str, str], ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state changes.

    This is the standard way to create transactions.

    Example:
        def compute_payment(view, payer, payee, amount):
            moves = [Move(amount, "SOL", payer, payee, "payment")]
            return build_transaction(view, moves)
    """
    import copy

    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    # Deep copy state changes to prevent later mutation by the caller
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
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
        units_to_create=units_to_create or (),
        custody_to_create=custody_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Value transfers between wallets
        state_changes: Unit state changes
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        units_to_create: Units registered by this transaction
        custody_to_create: Custody locations opened by this transaction
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    custody_to_create: Tuple[Tuple[str, str], ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if (not self.moves and not self.state_changes
                and not self.units_to_create and not self.custody_to_create):
            raise ValueError("Transaction must have moves, state_changes, or creations")
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
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        if self.units_to_create or self.custody_to_create:
            lines.append(f"├{bar}┤")
            for unit in self.units_to_create:
                lines.append(f"│{pad('   + unit ' + unit.symbol + ' (' + unit.name + ')')}│")
            for wallet_id, unit_symbol in self.custody_to_create:
                lines.append(f"│{pad('   + custody ' + wallet_id + ' / ' + unit_symbol)}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (reserve currency or curve asset) in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g. "SOL", "PUMP").
        name: Human-readable name.
        unit_type: UNIT_TYPE_RESERVE or UNIT_TYPE_CURVE_ASSET.
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Fractional digits of one whole unit (display only).
        _frozen_state: Frozen state representation (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: int = U64_MAX
    decimal_places: int = 0
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """The unit's state as a fresh dict."""
        return _thaw_state(self._frozen_state)

    def to_whole(self, amount: int) -> Decimal:
        """Express a minimal-unit amount in whole units."""
        return Decimal(amount).scaleb(-self.decimal_places)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def reserve_currency(symbol: str, name: str, decimal_places: int = RESERVE_DECIMAL_PLACES) -> Unit:
    """
    Create a reserve currency unit (e.g. SOL counted in lamports).

    Args:
        symbol: Currency code (e.g., "SOL").
        name: Full name of the currency.
        decimal_places: Fractional digits of one whole unit (default: 9).

    Returns:
        A Unit with no overdraft allowed.
    """
    if decimal_places < 0:
        raise ValueError(f"decimal_places must be non-negative, got {decimal_places}")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_RESERVE,
        decimal_places=decimal_places,
        min_balance=0,
    )
