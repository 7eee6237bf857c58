"""
ledger.py - Stateful custody ledger

The Ledger class is the central state manager. It is the only module that
changes balances, so every change is validated and paired with an audit record.

Key responsibilities:
    - Deposits, withdrawals and transfers over wallets held in an AccountRegistry
    - Appends one TransactionRecord per balance change to an append-only log
    - Executes transfers atomically (both halves apply or neither does)
    - Balance and history queries, conservation checks, clone() and replay()
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from decimal import Decimal, localcontext
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union
import hashlib
import threading

from .core import (
    # Types
    Wallet, WalletType, TransactionRecord, TransactionType, FixedClock,
    AmountLike,
    # Constants
    ZERO, CONSERVATION_TOLERANCE, LEDGER_CONTEXT,
    # Exceptions
    LedgerError, InsufficientFunds, SameWalletTransfer,
    # Helper functions
    to_amount, format_amount, system_clock,
)
from .registry import AccountRegistry


class Ledger:
    """
    Custody ledger with full validation and audit trail.

    Design Principles:
        - Always validates: amounts must be positive, wallets must be
          registered, balances can never go below zero.
        - Always logs: every successful balance change appends exactly one
          TransactionRecord. A transfer appends two (withdrawal, then deposit).

    Thread Safety:
        Every public method runs under a single re-entrant lock, so a reader
        never observes half of a transfer.

    Example:
        ledger = Ledger("main")
        ledger.create_wallet("hot_001", "0x1234567890abcdef", WalletType.HOT)
        ledger.create_wallet("cold_001", "0xfedcba0987654321", WalletType.COLD)
        ledger.deposit("hot_001", "10.5")
        ledger.transfer("hot_001", "cold_001", "2.0")
    """

    def __init__(
        self,
        name: str = "main",
        verbose: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Create an empty ledger.

        Args:
            name: Ledger identifier
            verbose: Print each applied or rejected operation (default: True)
            clock: Zero-argument callable returning Unix seconds
                   (default: system_clock)
        """
        self.name = name
        self.verbose = verbose
        self.registry = AccountRegistry()
        self.transaction_log: List[TransactionRecord] = []
        self._clock = clock or system_clock
        self._lock = threading.RLock()
        # Monotonic sequence counter for log ordering
        self._next_sequence: int = 0

    # ========================================================================
    # REGISTRY (pass-throughs)
    # ========================================================================

    def create_wallet(self, wallet_id: str, address: str, kind: Union[WalletType, str]) -> Wallet:
        """
        Register a new wallet with a zero balance.

        Raises:
            DuplicateWallet: If wallet_id is already registered
        """
        with self._lock:
            try:
                wallet = self.registry.create(wallet_id, address, kind)
            except LedgerError as e:
                self._print_rejected("CREATE", e)
                raise
        if self.verbose:
            print(f"📝 Registered: {wallet.id} [{wallet.kind.value}] {wallet.address}")
        return wallet

    def get_wallet(self, wallet_id: str) -> Wallet:
        with self._lock:
            return self.registry.get(wallet_id)

    def wallet_exists(self, wallet_id: str) -> bool:
        with self._lock:
            return self.registry.exists(wallet_id)

    def wallet_count(self) -> int:
        with self._lock:
            return self.registry.count()

    def all_wallets(self) -> Mapping[str, Wallet]:
        """
        Read-only live view of all wallets keyed by id.

        The view itself is obtained under the lock. Iterating it while other
        threads create wallets is not safe; use balance_of() or
        total_balance() for consistent reads from worker threads.
        """
        with self._lock:
            return self.registry.all()

    @property
    def wallets(self) -> Mapping[str, Wallet]:
        with self._lock:
            return self.registry.all()

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def deposit(self, wallet_id: str, amount: AmountLike) -> TransactionRecord:
        """
        Credit a wallet.

        Args:
            wallet_id: Wallet to credit
            amount: Positive amount (Decimal, int, str or float)

        Returns:
            The appended DEPOSIT record

        Raises:
            InvalidAmount: If amount is not a positive finite number
            WalletNotRegistered: If wallet_id is not registered
        """
        with self._lock:
            try:
                value = to_amount(amount)
                self.registry.get(wallet_id)
                record = self._credit(wallet_id, value, self._clock())
            except LedgerError as e:
                self._print_rejected("DEPOSIT", e)
                raise
        self._print_applied(record)
        return record

    def withdraw(self, wallet_id: str, amount: AmountLike) -> TransactionRecord:
        """
        Debit a wallet.

        Returns:
            The appended WITHDRAWAL record

        Raises:
            InvalidAmount: If amount is not a positive finite number
            WalletNotRegistered: If wallet_id is not registered
            InsufficientFunds: If amount exceeds the current balance
        """
        with self._lock:
            try:
                value = to_amount(amount)
                self.registry.get(wallet_id)
                record = self._debit(wallet_id, value, self._clock())
            except LedgerError as e:
                self._print_rejected("WITHDRAWAL", e)
                raise
        self._print_applied(record)
        return record

    def transfer(
        self, from_id: str, to_id: str, amount: AmountLike
    ) -> Tuple[TransactionRecord, TransactionRecord]:
        """
        Move funds between two wallets atomically.

        Validation order: amount, same-wallet, source exists, destination
        exists, source balance. Both halves run inside one critical section.
        If anything fails after the source has been debited, both balances and
        the log are restored before the error propagates.

        Returns:
            (withdrawal record on source, deposit record on destination),
            sharing one timestamp and one transfer_id

        Raises:
            InvalidAmount: If amount is not a positive finite number
            SameWalletTransfer: If from_id == to_id
            WalletNotRegistered: If either wallet is not registered
            InsufficientFunds: If amount exceeds the source balance
        """
        with self._lock:
            try:
                value = to_amount(amount)
                if from_id == to_id:
                    raise SameWalletTransfer(from_id)
                source = self.registry.get(from_id)
                dest = self.registry.get(to_id)
                if value > source.balance:
                    raise InsufficientFunds(from_id, value)
                records = self._transfer(source, dest, value)
            except LedgerError as e:
                self._print_rejected("TRANSFER", e)
                raise
        for record in records:
            self._print_applied(record)
        return records

    def _transfer(
        self, source: Wallet, dest: Wallet, amount: Decimal
    ) -> Tuple[TransactionRecord, TransactionRecord]:
        timestamp = self._clock()
        log_length = len(self.transaction_log)
        sequence = self._next_sequence
        transfer_id = f"xfer:{sequence:012d}"
        try:
            out = self._debit(source.id, amount, timestamp, transfer_id)
            into = self._credit(dest.id, amount, timestamp, transfer_id)
        except Exception:
            # Rollback: restore both balances and drop any partial records
            self.registry._replace(source.id, source.balance)
            self.registry._replace(dest.id, dest.balance)
            del self.transaction_log[log_length:]
            self._next_sequence = sequence
            raise
        return out, into

    def _credit(
        self, wallet_id: str, amount: Decimal, timestamp: int,
        transfer_id: Optional[str] = None,
    ) -> TransactionRecord:
        wallet = self.registry.get(wallet_id)
        self.registry._replace(wallet_id, LEDGER_CONTEXT.add(wallet.balance, amount))
        return self._append(wallet_id, TransactionType.DEPOSIT, amount, timestamp, transfer_id)

    def _debit(
        self, wallet_id: str, amount: Decimal, timestamp: int,
        transfer_id: Optional[str] = None,
    ) -> TransactionRecord:
        wallet = self.registry.get(wallet_id)
        if amount > wallet.balance:
            raise InsufficientFunds(wallet_id, amount)
        self.registry._replace(wallet_id, LEDGER_CONTEXT.subtract(wallet.balance, amount))
        return self._append(wallet_id, TransactionType.WITHDRAWAL, amount, timestamp, transfer_id)

    def _append(
        self, wallet_id: str, kind: TransactionType, amount: Decimal,
        timestamp: int, transfer_id: Optional[str],
    ) -> TransactionRecord:
        record = TransactionRecord(
            wallet_id=wallet_id,
            kind=kind,
            amount=amount,
            timestamp=timestamp,
            sequence_number=self._next_sequence,
            transfer_id=transfer_id,
        )
        self.transaction_log.append(record)
        self._next_sequence += 1
        return record

    # ========================================================================
    # QUERIES (read-only)
    # ========================================================================

    def balance_of(self, wallet_id: str) -> Decimal:
        """
        Raises:
            WalletNotRegistered: If wallet_id is not registered
        """
        with self._lock:
            return self.registry.get(wallet_id).balance

    def total_balance(self) -> Decimal:
        """
        Sum of balances across all wallets.

        Wallets are summed in sorted id order so accumulation is deterministic.
        """
        with self._lock, localcontext(LEDGER_CONTEXT):
            wallets = self.registry.all()
            return sum((wallets[w].balance for w in sorted(wallets)), ZERO)

    def history_of(self, wallet_id: str) -> List[TransactionRecord]:
        """
        Records for one wallet in insertion order.

        Returns an empty list for a registered wallet with no activity.

        Raises:
            WalletNotRegistered: If wallet_id is not registered
        """
        with self._lock:
            self.registry.get(wallet_id)
            return [r for r in self.transaction_log if r.wallet_id == wallet_id]

    def all_history(self) -> Tuple[TransactionRecord, ...]:
        """The full log in insertion order."""
        with self._lock:
            return tuple(self.transaction_log)

    def balances_by_kind(self) -> Dict[WalletType, Decimal]:
        """Total balance per wallet kind, for reporting."""
        with self._lock, localcontext(LEDGER_CONTEXT):
            totals = {kind: ZERO for kind in WalletType}
            wallets = self.registry.all()
            for wallet_id in sorted(wallets):
                wallet = wallets[wallet_id]
                totals[wallet.kind] += wallet.balance
            return totals

    def verify_conservation(self) -> Dict[str, object]:
        """
        Check the ledger's invariants against its own log.

        Total balance must equal deposits minus withdrawals across the whole
        log, and no wallet may hold a negative balance.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all invariants hold
            - 'total_balance': Decimal - Sum of wallet balances
            - 'deposits': Decimal - Sum of DEPOSIT amounts in the log
            - 'withdrawals': Decimal - Sum of WITHDRAWAL amounts in the log
            - 'net_deposits': Decimal - deposits - withdrawals
            - 'negative_wallets': List[str] - Wallet ids below zero

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], result
        """
        with self._lock, localcontext(LEDGER_CONTEXT):
            deposits = sum(
                (r.amount for r in self.transaction_log if r.kind is TransactionType.DEPOSIT),
                ZERO,
            )
            withdrawals = sum(
                (r.amount for r in self.transaction_log if r.kind is TransactionType.WITHDRAWAL),
                ZERO,
            )
            total = self.total_balance()
            negative = sorted(
                w.id for w in self.registry.all().values() if w.balance < ZERO
            )
            net = deposits - withdrawals
            return {
                'valid': abs(total - net) <= CONSERVATION_TOLERANCE and not negative,
                'total_balance': total,
                'deposits': deposits,
                'withdrawals': withdrawals,
                'net_deposits': net,
                'negative_wallets': negative,
            }

    def content_hash(self, include_timestamps: bool = True) -> str:
        """
        SHA-256 digest of wallet state and the full log.

        Two ledgers that received the same operations in the same order hash
        identically. Pass include_timestamps=False to compare runs recorded
        at different wall-clock times.
        """
        with self._lock:
            parts = []
            wallets = self.registry.all()
            for wallet_id in sorted(wallets):
                w = wallets[wallet_id]
                parts.append(
                    f"wallet:{w.id}|{w.address}|{w.kind.value}|{format_amount(w.balance)}"
                )
            for r in self.transaction_log:
                ts = str(r.timestamp) if include_timestamps else ""
                parts.append(
                    f"record:{r.sequence_number}|{r.wallet_id}|{r.kind.value}|"
                    f"{format_amount(r.amount)}|{ts}|{r.transfer_id or ''}"
                )
            content = "\n".join(parts)
            return hashlib.sha256(content.encode()).hexdigest()

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        Wallets and records are immutable, so copying the containers is
        enough for the clone and the original to evolve separately.
        """
        with self._lock:
            cloned = Ledger(name=self.name, verbose=self.verbose, clock=self._clock)
            for wallet in self.registry.all().values():
                cloned.registry._restore(wallet)
            cloned.transaction_log = list(self.transaction_log)
            cloned._next_sequence = self._next_sequence
            return cloned

    def replay(self, clock: Optional[Callable[[], int]] = None) -> Ledger:
        """
        Create a new ledger by re-executing the transaction log.

        Wallets are registered with their address and kind, then every record
        is re-applied in order with its original timestamp. Transfer pairs are
        re-applied as transfers. The result has identical balances, records
        and content_hash() to this ledger.

        Args:
            clock: Clock for the replayed ledger once replay completes
                   (default: this ledger's clock)

        Raises:
            LedgerError: If a record cannot be re-applied
        """
        with self._lock:
            replay_clock = FixedClock()
            new_ledger = Ledger(
                name=f"{self.name}_replayed",
                verbose=False,
                clock=replay_clock,
            )
            for wallet in self.registry.all().values():
                new_ledger.create_wallet(wallet.id, wallet.address, wallet.kind)

            log = self.transaction_log
            i = 0
            while i < len(log):
                record = log[i]
                replay_clock.set(record.timestamp)
                try:
                    if record.transfer_id and record.kind is TransactionType.WITHDRAWAL:
                        pair = log[i + 1] if i + 1 < len(log) else None
                        if pair is None or pair.transfer_id != record.transfer_id:
                            raise LedgerError(f"Transfer {record.transfer_id} is missing its deposit")
                        new_ledger.transfer(record.wallet_id, pair.wallet_id, record.amount)
                        i += 2
                        continue
                    if record.kind is TransactionType.DEPOSIT:
                        new_ledger.deposit(record.wallet_id, record.amount)
                    else:
                        new_ledger.withdraw(record.wallet_id, record.amount)
                except LedgerError as e:
                    raise LedgerError(
                        f"Replay failed at record {record.sequence_number}: {e}"
                    ) from e
                i += 1

            new_ledger._clock = clock or self._clock
            new_ledger.verbose = self.verbose
            return new_ledger

    # ========================================================================
    # OUTPUT
    # ========================================================================

    def _print_applied(self, record: TransactionRecord) -> None:
        if self.verbose:
            link = f" [{record.transfer_id}]" if record.transfer_id else ""
            print(
                f"✓ {record.kind.value.upper()}: {format_amount(record.amount)} "
                f"{record.wallet_id} (#{record.sequence_number}){link}"
            )

    def _print_rejected(self, operation: str, error: LedgerError) -> None:
        if self.verbose:
            print(f"✗ REJECTED {operation}: {error}")

    def __repr__(self) -> str:
        return (
            f"Ledger({self.name}: {len(self.registry)} wallets, "
            f"{len(self.transaction_log)} records)"
        )
