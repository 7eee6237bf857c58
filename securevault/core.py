"""
Core types and pure functions for the custody ledger.

This module provides the foundational data structures for the ledger:
1. Immutable data structures: Wallet, TransactionRecord
2. Enums: WalletType, TransactionType
3. Exceptions: LedgerError and domain-specific error types
4. Amount handling: to_amount() coercion and quantization to the smallest unit
5. Clocks: system_clock and FixedClock for deterministic timestamps

Nothing in this module mutates ledger state. The Ledger class in ledger.py
is the only place balances change.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import (
    Context, Decimal, DivisionByZero, Inexact, InvalidOperation, Overflow,
    ROUND_DOWN, ROUND_HALF_EVEN, localcontext,
)
from enum import Enum
import time
from typing import Any, Optional, Union


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances are Decimal, never float. All ledger arithmetic runs in this one
# explicit context rather than the thread-local default, so every thread sums
# with the same precision and rounding.
#
# Context parameters:
#   - prec=50: Precision sufficient for any balance the ledger can hold
#   - rounding=ROUND_HALF_EVEN: Banker's rounding (unbiased)
#   - traps: Inexact results raise instead of silently losing digits
#
LEDGER_CONTEXT = Context(
    prec=50,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Smallest representable unit is 1e-8 (one satoshi for BTC-denominated wallets).
AMOUNT_DECIMAL_PLACES = 8

# Amounts finer than the smallest unit are rejected, never rounded.
AMOUNT_ROUNDING = ROUND_DOWN

AMOUNT_QUANTUM = Decimal(10) ** -AMOUNT_DECIMAL_PLACES

ZERO = Decimal("0")

# Amounts are quantized exactly, so conservation must hold with no slack.
CONSERVATION_TOLERANCE = Decimal("0")


# Anything to_amount() accepts.
AmountLike = Union[Decimal, int, float, str]


# ============================================================================
# ENUMS
# ============================================================================

class WalletType(Enum):
    """
    Classification of a wallet.

    HOT: operational wallet used for frequent transactions.
    COLD: long-term storage wallet.

    The kind is reporting metadata only. No ledger operation behaves
    differently for hot and cold wallets.
    """
    HOT = "hot"
    COLD = "cold"

    @classmethod
    def parse(cls, value: Union['WalletType', str]) -> 'WalletType':
        """Accept a WalletType, its value ("hot") or its name ("HOT", "Hot")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        raise ValueError(f"Unknown wallet type: {value!r}")


class TransactionType(Enum):
    """Direction of a single balance change."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class DuplicateWallet(LedgerError):
    """Raised when creating a wallet whose id is already registered."""

    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet {wallet_id} already registered")


class WalletNotRegistered(LedgerError):
    """Raised when an operation references a wallet id that is not registered."""

    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet {wallet_id} not registered")


class InvalidAmount(LedgerError, ValueError):
    """Raised when an amount is zero, negative, non-finite or not a number."""

    def __init__(self, amount: Any, reason: str = "must be positive"):
        self.amount = amount
        super().__init__(f"Amount {amount!r} {reason}")


class InsufficientFunds(LedgerError):
    """Raised when a withdrawal or transfer exceeds the source wallet's balance."""

    def __init__(self, wallet_id: str, amount: Decimal):
        self.wallet_id = wallet_id
        self.amount = amount
        super().__init__(f"Wallet {wallet_id} has insufficient funds for {amount}")


class SameWalletTransfer(LedgerError):
    """Raised when a transfer names the same wallet as source and destination."""

    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"Cannot transfer from wallet {wallet_id} to itself")


class CorruptSnapshot(LedgerError):
    """Raised when a serialized ledger cannot be restored consistently."""
    pass


# ============================================================================
# AMOUNTS
# ============================================================================

def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied amount to a quantized, strictly positive Decimal.

    Floats go through str() so that 10.5 becomes Decimal("10.5") rather than
    its binary expansion. The result carries exactly AMOUNT_DECIMAL_PLACES
    places. A value with more significant places is rejected rather than
    truncated, so the caller never moves a different amount than it asked for.

    Raises:
        InvalidAmount: If the value is not a number, is not finite, is not
                       positive, has more than AMOUNT_DECIMAL_PLACES places,
                       or is too large for LEDGER_CONTEXT.
    """
    if isinstance(value, bool):
        raise InvalidAmount(value, "is not a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount(value, "is not a number") from None
    else:
        raise InvalidAmount(value, "is not a number")

    if amount.is_nan() or amount.is_infinite():
        raise InvalidAmount(value, "must be finite")
    if amount <= ZERO:
        raise InvalidAmount(value)
    with localcontext(LEDGER_CONTEXT):
        try:
            quantized = amount.quantize(AMOUNT_QUANTUM, rounding=AMOUNT_ROUNDING)
        except Inexact:
            raise InvalidAmount(
                value, f"has more than {AMOUNT_DECIMAL_PLACES} decimal places"
            ) from None
        except InvalidOperation:
            raise InvalidAmount(value, "is too large") from None
    return quantized


def format_amount(amount: Decimal) -> str:
    """
    Render a Decimal in canonical fixed-point form.

    Semantically equal values produce identical strings:
    Decimal("1.0") and Decimal("1.00000000") both become "1".
    """
    normalized = amount.normalize(LEDGER_CONTEXT)
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


# ============================================================================
# CLOCKS
# ============================================================================

def system_clock() -> int:
    """Current wall-clock time in whole seconds since the Unix epoch."""
    return int(time.time())


class FixedClock:
    """
    Controllable clock for tests and replays.

    Returns the same value on every call until advance() or set() is called.

    Example:
        clock = FixedClock(1_700_000_000)
        ledger = Ledger("test", verbose=False, clock=clock)
        clock.advance(60)
    """

    def __init__(self, start: int = 0):
        self._now = int(start)

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int = 1) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards: {seconds}")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Wallet:
    """
    A labeled account holding a non-negative balance.

    Attributes:
        id: Unique identifier, fixed at creation.
        address: Opaque display string such as a chain address.
        kind: HOT or COLD classification (reporting metadata only).
        balance: Current balance, quantized to AMOUNT_DECIMAL_PLACES.

    Wallet objects are immutable snapshots. The ledger replaces the
    registry entry with a new Wallet whenever the balance changes.
    """
    id: str
    address: str
    kind: WalletType
    balance: Decimal = ZERO

    def __post_init__(self):
        if not isinstance(self.id, str):
            raise ValueError(f"Wallet id must be str, got {type(self.id)}")
        if not self.id.strip():
            raise ValueError("Wallet id cannot be empty")
        if not isinstance(self.balance, Decimal):
            raise ValueError(f"Wallet balance must be Decimal, got {type(self.balance)}")
        if self.balance < ZERO:
            raise ValueError(f"Wallet {self.id} balance cannot be negative")

    def __repr__(self) -> str:
        return f"Wallet({self.id} [{self.kind.value}] {format_amount(self.balance)} @ {self.address})"


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    An immutable audit entry describing one balance change on one wallet.

    A transfer produces two records, a WITHDRAWAL on the source followed by a
    DEPOSIT on the destination, sharing the same timestamp and transfer_id.

    Attributes:
        wallet_id: Wallet whose balance changed.
        kind: DEPOSIT or WITHDRAWAL.
        amount: Magnitude of the change (always positive).
        timestamp: Seconds since the Unix epoch when the record was created.
        sequence_number: Position in the ledger's log (monotonic, from 0).
        transfer_id: Links both halves of a transfer; None otherwise.
    """
    wallet_id: str
    kind: TransactionType
    amount: Decimal
    timestamp: int
    sequence_number: int = 0
    transfer_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            raise ValueError(f"Record amount must be Decimal, got {type(self.amount)}")
        if self.amount <= ZERO:
            raise ValueError("Record amount must be positive")

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign of its effect on the wallet balance."""
        if self.kind is TransactionType.DEPOSIT:
            return self.amount
        return -self.amount

    def __repr__(self) -> str:
        link = f", transfer={self.transfer_id}" if self.transfer_id else ""
        return (
            f"TransactionRecord(#{self.sequence_number} {self.kind.value} "
            f"{format_amount(self.amount)} {self.wallet_id} @ {self.timestamp}{link})"
        )
