"""
serialization.py - Lossless ledger snapshots

Converts a Ledger to plain JSON-compatible data and back. A snapshot carries
every wallet (id, address, kind, balance) and the full ordered log (sequence
number, wallet id, kind, amount, timestamp, transfer id), which is enough to
reconstruct both current state and history exactly.

Amounts are written as canonical decimal strings, never floats, so a
round trip cannot introduce drift.
"""

from __future__ import annotations
from decimal import Decimal, Inexact, InvalidOperation, localcontext
import json
from typing import Any, Callable, Dict, Optional

from .core import (
    Wallet, WalletType, TransactionRecord, TransactionType,
    LedgerError, CorruptSnapshot, LEDGER_CONTEXT, ZERO, AMOUNT_QUANTUM, format_amount,
)
from .ledger import Ledger


FORMAT_VERSION = 1


def to_dict(ledger: Ledger) -> Dict[str, Any]:
    """Snapshot a ledger as JSON-compatible data."""
    with ledger._lock:
        wallets = ledger.registry.all()
        return {
            "format_version": FORMAT_VERSION,
            "name": ledger.name,
            "wallets": [
                {
                    "id": w.id,
                    "address": w.address,
                    "kind": w.kind.value,
                    "balance": format_amount(w.balance),
                }
                for w in wallets.values()
            ],
            "transactions": [
                {
                    "sequence_number": r.sequence_number,
                    "wallet_id": r.wallet_id,
                    "kind": r.kind.value,
                    "amount": format_amount(r.amount),
                    "timestamp": r.timestamp,
                    "transfer_id": r.transfer_id,
                }
                for r in ledger.transaction_log
            ],
        }


def _decimal(value: Any, field_name: str) -> Decimal:
    if not isinstance(value, str):
        raise CorruptSnapshot(f"{field_name} must be a decimal string, got {value!r}")
    try:
        result = Decimal(value)
    except InvalidOperation:
        raise CorruptSnapshot(f"{field_name} is not a decimal: {value!r}") from None
    if not result.is_finite():
        raise CorruptSnapshot(f"{field_name} must be finite: {value!r}")
    try:
        LEDGER_CONTEXT.quantize(result, AMOUNT_QUANTUM)
    except (Inexact, InvalidOperation):
        raise CorruptSnapshot(f"{field_name} is not a valid ledger amount: {value!r}") from None
    return result


def from_dict(
    data: Dict[str, Any],
    verbose: bool = False,
    clock: Optional[Callable[[], int]] = None,
) -> Ledger:
    """
    Rebuild a ledger from a to_dict() snapshot.

    The restored ledger is checked before it is returned: sequence numbers must
    run 0..n-1, every record must reference a known wallet, no balance may be
    negative, the conservation invariant must hold, and each wallet balance
    must equal the signed sum of that wallet's own records.

    Raises:
        CorruptSnapshot: If the snapshot is malformed or inconsistent
    """
    if not isinstance(data, dict):
        raise CorruptSnapshot(f"Snapshot must be a mapping, got {type(data).__name__}")
    version = data.get("format_version")
    if version != FORMAT_VERSION:
        raise CorruptSnapshot(f"Unsupported snapshot format version: {version!r}")

    ledger = Ledger(name=data.get("name", "main"), verbose=verbose, clock=clock)
    try:
        for entry in data.get("wallets", []):
            ledger.registry._restore(Wallet(
                id=entry["id"],
                address=entry["address"],
                kind=WalletType.parse(entry["kind"]),
                balance=_decimal(entry["balance"], f"wallet {entry['id']} balance"),
            ))

        for expected_sequence, entry in enumerate(data.get("transactions", [])):
            if entry["sequence_number"] != expected_sequence:
                raise CorruptSnapshot(
                    f"Record sequence {entry['sequence_number']} out of order, "
                    f"expected {expected_sequence}"
                )
            if not ledger.registry.exists(entry["wallet_id"]):
                raise CorruptSnapshot(
                    f"Record {expected_sequence} references unknown wallet {entry['wallet_id']}"
                )
            ledger.transaction_log.append(TransactionRecord(
                wallet_id=entry["wallet_id"],
                kind=TransactionType(entry["kind"]),
                amount=_decimal(entry["amount"], f"record {expected_sequence} amount"),
                timestamp=int(entry["timestamp"]),
                sequence_number=expected_sequence,
                transfer_id=entry.get("transfer_id"),
            ))
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptSnapshot(f"Malformed snapshot: {e}") from e
    except CorruptSnapshot:
        raise
    except LedgerError as e:
        raise CorruptSnapshot(str(e)) from e

    ledger._next_sequence = len(ledger.transaction_log)

    check = ledger.verify_conservation()
    if not check['valid']:
        raise CorruptSnapshot(
            f"Snapshot violates conservation: total {check['total_balance']} "
            f"!= net deposits {check['net_deposits']}"
        )

    with localcontext(LEDGER_CONTEXT):
        expected = {wallet_id: ZERO for wallet_id in ledger.registry.all()}
        for record in ledger.transaction_log:
            expected[record.wallet_id] += record.signed_amount
    for wallet_id, balance in expected.items():
        actual = ledger.registry.get(wallet_id).balance
        if actual != balance:
            raise CorruptSnapshot(
                f"Wallet {wallet_id} balance {format_amount(actual)} "
                f"!= its recorded net {format_amount(balance)}"
            )
    return ledger


def dumps(ledger: Ledger, indent: Optional[int] = None) -> str:
    """Serialize a ledger to a JSON string."""
    return json.dumps(to_dict(ledger), indent=indent)


def loads(
    text: str,
    verbose: bool = False,
    clock: Optional[Callable[[], int]] = None,
) -> Ledger:
    """
    Deserialize a ledger from a dumps() string.

    Raises:
        CorruptSnapshot: If the text is not valid JSON or not a valid snapshot
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptSnapshot(f"Invalid JSON: {e}") from e
    return from_dict(data, verbose=verbose, clock=clock)
