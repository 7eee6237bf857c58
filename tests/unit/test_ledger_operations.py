"""
test_ledger_operations.py - Unit tests for ledger.py

Tests:
- Ledger creation
- Wallet pass-throughs
- deposit / withdraw / transfer validation and effects
- Queries: balance_of, total_balance, history_of, all_history, balances_by_kind
- verbose output
- clone() and replay()
"""

import pytest
import threading
from decimal import Decimal

from securevault import (
    Ledger, WalletType, TransactionType, FixedClock,
    DuplicateWallet, WalletNotRegistered, InvalidAmount,
    InsufficientFunds, SameWalletTransfer, LedgerError,
)

from conftest import START_TIME, snapshot_state


class TestLedgerCreation:

    def test_create_ledger(self):
        ledger = Ledger("test", verbose=False)
        assert ledger.name == "test"
        assert ledger.verbose is False
        assert ledger.wallet_count() == 0
        assert ledger.all_history() == ()
        assert ledger.total_balance() == Decimal("0")

    def test_default_clock_is_unix_seconds(self):
        ledger = Ledger("test", verbose=False)
        ledger.create_wallet("w", "0x1", WalletType.HOT)
        record = ledger.deposit("w", 1)
        assert isinstance(record.timestamp, int)
        assert record.timestamp > START_TIME


class TestWalletPassThroughs:

    def test_create_and_get(self, empty_ledger):
        wallet = empty_ledger.create_wallet("hot_001", "0x1234567890abcdef", WalletType.HOT)
        assert empty_ledger.get_wallet("hot_001") == wallet
        assert empty_ledger.wallet_exists("hot_001")
        assert not empty_ledger.wallet_exists("ghost")
        assert empty_ledger.wallet_count() == 1

    def test_duplicate(self, basic_ledger):
        with pytest.raises(DuplicateWallet):
            basic_ledger.create_wallet("hot_001", "0xother", WalletType.COLD)
        assert basic_ledger.wallet_count() == 2

    def test_all_wallets_reflects_live_balances(self, basic_ledger):
        view = basic_ledger.all_wallets()
        basic_ledger.deposit("hot_001", 3)
        assert view["hot_001"].balance == Decimal("3")
        assert set(basic_ledger.wallets) == {"hot_001", "cold_001"}

    def test_all_wallets_waits_for_lock(self, basic_ledger):
        got = []
        with basic_ledger._lock:
            reader = threading.Thread(target=lambda: got.append(basic_ledger.all_wallets()))
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            assert got == []
        reader.join(timeout=5)
        assert set(got[0]) == {"hot_001", "cold_001"}


class TestDeposit:

    def test_deposit(self, basic_ledger):
        record = basic_ledger.deposit("hot_001", Decimal("10.5"))
        assert basic_ledger.balance_of("hot_001") == Decimal("10.5")
        assert record.kind is TransactionType.DEPOSIT
        assert record.amount == Decimal("10.5")
        assert record.timestamp == START_TIME
        assert record.sequence_number == 0
        assert record.transfer_id is None

    @pytest.mark.parametrize("amount", [0, -1, Decimal("-0.01")])
    def test_non_positive_rejected(self, basic_ledger, amount):
        with pytest.raises(InvalidAmount):
            basic_ledger.deposit("hot_001", amount)
        assert basic_ledger.balance_of("hot_001") == Decimal("0")
        assert basic_ledger.all_history() == ()

    def test_unknown_wallet(self, basic_ledger):
        with pytest.raises(WalletNotRegistered):
            basic_ledger.deposit("ghost", 1)
        assert basic_ledger.all_history() == ()

    def test_invalid_amount_checked_before_wallet(self, basic_ledger):
        with pytest.raises(InvalidAmount):
            basic_ledger.deposit("ghost", -1)


class TestWithdraw:

    def test_withdraw(self, funded_ledger):
        record = funded_ledger.withdraw("hot_001", Decimal("5.0"))
        assert funded_ledger.balance_of("hot_001") == Decimal("5.5")
        assert record.kind is TransactionType.WITHDRAWAL
        assert record.amount == Decimal("5")

    def test_withdraw_entire_balance(self, funded_ledger):
        funded_ledger.withdraw("hot_001", funded_ledger.balance_of("hot_001"))
        assert funded_ledger.balance_of("hot_001") == Decimal("0")

    def test_withdraw_one_unit_over_balance(self, funded_ledger):
        before = snapshot_state(funded_ledger)
        with pytest.raises(InsufficientFunds) as exc:
            funded_ledger.withdraw("hot_001", Decimal("10.50000001"))
        assert exc.value.wallet_id == "hot_001"
        assert snapshot_state(funded_ledger) == before

    def test_withdraw_less_than_one_unit_over_balance(self, funded_ledger):
        before = snapshot_state(funded_ledger)
        over = funded_ledger.balance_of("hot_001") + Decimal("1e-9")
        with pytest.raises(LedgerError):
            funded_ledger.withdraw("hot_001", over)
        assert snapshot_state(funded_ledger) == before

    def test_sub_unit_amount_never_truncated(self, funded_ledger):
        before = snapshot_state(funded_ledger)
        with pytest.raises(InvalidAmount):
            funded_ledger.deposit("hot_001", "0.000000019")
        with pytest.raises(InvalidAmount):
            funded_ledger.transfer("hot_001", "cold_001", "1.000000001")
        assert snapshot_state(funded_ledger) == before

    def test_withdraw_from_empty(self, basic_ledger):
        with pytest.raises(InsufficientFunds):
            basic_ledger.withdraw("hot_001", 1)

    def test_withdraw_unknown_wallet(self, funded_ledger):
        with pytest.raises(WalletNotRegistered):
            funded_ledger.withdraw("ghost", 1)

    def test_withdraw_invalid_amount(self, funded_ledger):
        with pytest.raises(InvalidAmount):
            funded_ledger.withdraw("hot_001", 0)


class TestTransfer:

    def test_transfer(self, funded_ledger, clock):
        clock.advance(30)
        out, into = funded_ledger.transfer("hot_001", "cold_001", Decimal("2.0"))
        assert funded_ledger.balance_of("hot_001") == Decimal("8.5")
        assert funded_ledger.balance_of("cold_001") == Decimal("102.0")
        assert out.kind is TransactionType.WITHDRAWAL
        assert out.wallet_id == "hot_001"
        assert into.kind is TransactionType.DEPOSIT
        assert into.wallet_id == "cold_001"
        assert out.timestamp == into.timestamp == START_TIME + 30
        assert out.transfer_id == into.transfer_id
        assert out.transfer_id is not None
        assert into.sequence_number == out.sequence_number + 1
        assert funded_ledger.all_history()[-2:] == (out, into)

    def test_transfer_entire_balance(self, funded_ledger):
        funded_ledger.transfer("hot_001", "cold_001", Decimal("10.5"))
        assert funded_ledger.balance_of("hot_001") == Decimal("0")
        assert funded_ledger.balance_of("cold_001") == Decimal("110.5")

    def test_same_wallet_rejected(self, funded_ledger):
        before = snapshot_state(funded_ledger)
        with pytest.raises(SameWalletTransfer):
            funded_ledger.transfer("hot_001", "hot_001", 1)
        assert snapshot_state(funded_ledger) == before

    def test_same_wallet_rejected_regardless_of_balance(self, basic_ledger):
        with pytest.raises(SameWalletTransfer):
            basic_ledger.transfer("hot_001", "hot_001", 1000)

    def test_same_unknown_wallet_is_same_wallet_error(self, basic_ledger):
        with pytest.raises(SameWalletTransfer):
            basic_ledger.transfer("ghost", "ghost", 1)

    def test_unknown_destination(self, funded_ledger):
        before = snapshot_state(funded_ledger)
        with pytest.raises(WalletNotRegistered) as exc:
            funded_ledger.transfer("hot_001", "ghost", 1)
        assert exc.value.wallet_id == "ghost"
        assert snapshot_state(funded_ledger) == before

    def test_invalid_amount_checked_first(self, funded_ledger):
        with pytest.raises(InvalidAmount):
            funded_ledger.transfer("hot_001", "hot_001", 0)

    def test_transfer_ids_unique(self, funded_ledger):
        first, _ = funded_ledger.transfer("hot_001", "cold_001", 1)
        second, _ = funded_ledger.transfer("cold_001", "hot_001", 1)
        assert first.transfer_id != second.transfer_id


class TestQueries:

    def test_balance_of_unknown(self, basic_ledger):
        with pytest.raises(WalletNotRegistered):
            basic_ledger.balance_of("ghost")

    def test_total_balance(self, funded_ledger):
        assert funded_ledger.total_balance() == Decimal("110.5")

    def test_total_balance_empty(self, empty_ledger):
        assert empty_ledger.total_balance() == Decimal("0")

    def test_history_empty_for_new_wallet(self, basic_ledger):
        assert basic_ledger.history_of("hot_001") == []

    def test_history_unknown_wallet_raises(self, basic_ledger):
        with pytest.raises(WalletNotRegistered):
            basic_ledger.history_of("ghost")

    def test_history_filters_by_wallet(self, funded_ledger):
        history = funded_ledger.history_of("hot_001")
        assert len(history) == 1
        assert history[0].wallet_id == "hot_001"

    def test_history_is_a_copy(self, funded_ledger):
        history = funded_ledger.history_of("hot_001")
        history.clear()
        assert len(funded_ledger.history_of("hot_001")) == 1

    def test_all_history_is_read_only(self, funded_ledger):
        history = funded_ledger.all_history()
        assert isinstance(history, tuple)
        assert len(history) == 2

    def test_balances_by_kind(self, funded_ledger):
        funded_ledger.create_wallet("hot_002", "0x2", WalletType.HOT)
        funded_ledger.deposit("hot_002", "1.5")
        totals = funded_ledger.balances_by_kind()
        assert totals[WalletType.HOT] == Decimal("12")
        assert totals[WalletType.COLD] == Decimal("100")

    def test_verify_conservation(self, funded_ledger):
        funded_ledger.withdraw("hot_001", 5)
        result = funded_ledger.verify_conservation()
        assert result['valid']
        assert result['deposits'] == Decimal("110.5")
        assert result['withdrawals'] == Decimal("5")
        assert result['net_deposits'] == result['total_balance'] == Decimal("105.5")
        assert result['negative_wallets'] == []


class TestVerboseOutput:

    def test_applied_and_rejected_lines(self, clock, capsys):
        ledger = Ledger("test", verbose=True, clock=clock)
        ledger.create_wallet("hot_001", "0xabc", WalletType.HOT)
        ledger.deposit("hot_001", "10.5")
        with pytest.raises(InsufficientFunds):
            ledger.withdraw("hot_001", 20)
        out = capsys.readouterr().out
        assert "Registered: hot_001" in out
        assert "✓ DEPOSIT: 10.5 hot_001" in out
        assert "✗ REJECTED WITHDRAWAL" in out

    def test_silent_when_not_verbose(self, funded_ledger, capsys):
        funded_ledger.transfer("hot_001", "cold_001", 1)
        assert capsys.readouterr().out == ""


class TestCloneAndReplay:

    def test_clone_is_independent(self, funded_ledger):
        cloned = funded_ledger.clone()
        cloned.deposit("hot_001", 1)
        assert funded_ledger.balance_of("hot_001") == Decimal("10.5")
        assert cloned.balance_of("hot_001") == Decimal("11.5")
        assert len(funded_ledger.all_history()) == 2
        assert len(cloned.all_history()) == 3

    def test_clone_continues_sequence(self, funded_ledger):
        cloned = funded_ledger.clone()
        record = cloned.deposit("hot_001", 1)
        assert record.sequence_number == 2

    def test_replay_reproduces_state(self, funded_ledger, clock):
        funded_ledger.withdraw("hot_001", 5)
        clock.advance(10)
        funded_ledger.transfer("hot_001", "cold_001", 2)
        replayed = funded_ledger.replay()
        assert replayed.all_history() == funded_ledger.all_history()
        assert replayed.content_hash() == funded_ledger.content_hash()
        assert replayed.name == "test_replayed"

    def test_replay_uses_supplied_clock(self, funded_ledger):
        replayed = funded_ledger.replay(clock=FixedClock(5))
        record = replayed.deposit("hot_001", 1)
        assert record.timestamp == 5

    def test_replay_detects_broken_transfer(self, funded_ledger):
        funded_ledger.transfer("hot_001", "cold_001", 2)
        # Drop the deposit half to simulate a corrupted log
        funded_ledger.transaction_log.pop()
        with pytest.raises(LedgerError):
            funded_ledger.replay()


class TestContentHash:

    def test_equal_for_identical_histories(self, clock):
        ledgers = [Ledger(name, verbose=False, clock=clock) for name in ("a", "b")]
        for ledger in ledgers:
            ledger.create_wallet("w", "0x1", WalletType.HOT)
            ledger.deposit("w", 3)
        assert ledgers[0].content_hash() == ledgers[1].content_hash()

    def test_timestamps_optional(self):
        first = Ledger("a", verbose=False, clock=FixedClock(1))
        second = Ledger("b", verbose=False, clock=FixedClock(2))
        for ledger in (first, second):
            ledger.create_wallet("w", "0x1", WalletType.HOT)
            ledger.deposit("w", 3)
        assert first.content_hash() != second.content_hash()
        assert first.content_hash(include_timestamps=False) == second.content_hash(include_timestamps=False)
