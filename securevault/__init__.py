"""
securevault - Custody Ledger

An in-process ledger for balances across labeled hot and cold wallets, with an
append-only audit log of every balance change.

Usage:
    from securevault import Ledger, WalletType

    ledger = Ledger("main")
    ledger.create_wallet("hot_001", "0x1234567890abcdef", WalletType.HOT)
    ledger.create_wallet("cold_001", "0xfedcba0987654321", WalletType.COLD)

    ledger.deposit("hot_001", "10.5")
    ledger.deposit("cold_001", "100.0")
    ledger.withdraw("hot_001", "5.0")

    # Both halves apply or neither does
    ledger.transfer("hot_001", "cold_001", "2.0")

    ledger.balance_of("hot_001")      # Decimal("3.5")
    ledger.history_of("hot_001")      # [DEPOSIT 10.5, WITHDRAWAL 5, WITHDRAWAL 2]
"""

# Core types
from .core import (
    Wallet,
    WalletType,
    TransactionRecord,
    TransactionType,
    LedgerError,
    DuplicateWallet,
    WalletNotRegistered,
    InvalidAmount,
    InsufficientFunds,
    SameWalletTransfer,
    CorruptSnapshot,
    FixedClock,
    system_clock,
    to_amount,
    format_amount,
    AMOUNT_DECIMAL_PLACES,
    LEDGER_CONTEXT,
)

# Registry
from .registry import AccountRegistry

# Ledger
from .ledger import Ledger

# Snapshots
from .serialization import (
    to_dict,
    from_dict,
    dumps,
    loads,
)

__all__ = [
    # Core
    'Wallet', 'WalletType', 'TransactionRecord', 'TransactionType',
    'LedgerError', 'DuplicateWallet', 'WalletNotRegistered', 'InvalidAmount',
    'InsufficientFunds', 'SameWalletTransfer', 'CorruptSnapshot',
    'FixedClock', 'system_clock', 'to_amount', 'format_amount',
    'AMOUNT_DECIMAL_PLACES', 'LEDGER_CONTEXT',
    # Registry
    'AccountRegistry',
    # Ledger
    'Ledger',
    # Snapshots
    'to_dict', 'from_dict', 'dumps', 'loads',
]

__version__ = '1.0.0'
