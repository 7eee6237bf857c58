"""
registry.py - Wallet identity and existence

The AccountRegistry owns the set of wallets keyed by id. It enforces that ids
are unique on creation and that every later lookup refers to a registered
wallet. It never changes a balance on its own; the Ledger does that through
_replace().
"""

from __future__ import annotations
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Union
from dataclasses import replace

from .core import (
    Wallet, WalletType,
    DuplicateWallet, WalletNotRegistered,
)


class AccountRegistry:
    """
    Registry of wallets keyed by unique id.

    Not locked on its own. The owning Ledger serializes access.

    Example:
        registry = AccountRegistry()
        registry.create("hot_001", "0x1234567890abcdef", WalletType.HOT)
        registry.get("hot_001").balance   # Decimal("0")
    """

    def __init__(self):
        self._wallets: Dict[str, Wallet] = {}

    def create(self, wallet_id: str, address: str, kind: Union[WalletType, str]) -> Wallet:
        """
        Register a new wallet with a zero balance.

        Args:
            wallet_id: Unique identifier for the wallet
            address: Display address (e.g. a chain address)
            kind: WalletType, or its name/value as a string

        Returns:
            The created Wallet

        Raises:
            DuplicateWallet: If wallet_id is already registered
            ValueError: If wallet_id is empty or kind is unknown
        """
        if wallet_id in self._wallets:
            raise DuplicateWallet(wallet_id)
        wallet = Wallet(id=wallet_id, address=address, kind=WalletType.parse(kind))
        self._wallets[wallet_id] = wallet
        return wallet

    def get(self, wallet_id: str) -> Wallet:
        """
        Look up a wallet.

        Raises:
            WalletNotRegistered: If wallet_id is not registered
        """
        try:
            return self._wallets[wallet_id]
        except KeyError:
            raise WalletNotRegistered(wallet_id) from None

    def exists(self, wallet_id: str) -> bool:
        return wallet_id in self._wallets

    def count(self) -> int:
        return len(self._wallets)

    def all(self) -> Mapping[str, Wallet]:
        """Read-only live view of every registered wallet, keyed by id."""
        return MappingProxyType(self._wallets)

    def _replace(self, wallet_id: str, balance: Decimal) -> Wallet:
        """Swap in a new Wallet snapshot carrying an updated balance."""
        updated = replace(self.get(wallet_id), balance=balance)
        self._wallets[wallet_id] = updated
        return updated

    def _restore(self, wallet: Wallet) -> None:
        """Insert a fully-formed wallet (used when loading a snapshot)."""
        if wallet.id in self._wallets:
            raise DuplicateWallet(wallet.id)
        self._wallets[wallet.id] = wallet

    def __contains__(self, wallet_id: object) -> bool:
        return wallet_id in self._wallets

    def __len__(self) -> int:
        return len(self._wallets)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._wallets))

    def __repr__(self) -> str:
        return f"AccountRegistry({len(self._wallets)} wallets)"
