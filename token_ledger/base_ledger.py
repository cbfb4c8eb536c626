"""
Base Ledger Module

Balance, allowance and supply bookkeeping that the policy layers build on.
Amounts are integer base units. Every movement goes through credit/debit so
that only mint and burn ever change total supply:

    sum(balances) + total_burned == total_minted
"""

from typing import Callable, Dict, Optional, Any

from .addresses import ZERO_ADDRESS, normalize_address
from .errors import InsufficientAllowance, InsufficientBalance, InvalidAmount
from .events import EventPayload, approval_event, transfer_event
from .storage import StorageInterface

EventSink = Callable[[EventPayload], None]


def require_amount(amount: Any) -> int:
    """Validate a token amount in base units"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer number of base units, got {amount!r}",
                            {"amount": repr(amount)})
    if amount < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {amount}", {"amount": str(amount)})
    return amount


class BaseLedger:
    """
    Per-account balances, per-(owner, spender) allowances and the supply counters.

    Integers are persisted as decimal strings. Callers are responsible for
    wrapping a sequence of primitives in ``storage.atomic()``.
    """

    BALANCES = "balances"
    ALLOWANCES = "allowances"
    SUPPLY = "supply"
    SUPPLY_KEY = "token"

    def __init__(self, storage: StorageInterface, emit: Optional[EventSink] = None):
        self.storage = storage
        self._emit = emit or (lambda event: None)

    # Queries

    def balance_of(self, address: str) -> int:
        data = self.storage.load(self.BALANCES, normalize_address(address))
        return int(data['balance']) if data else 0

    def allowance(self, owner: str, spender: str) -> int:
        data = self.storage.load(self.ALLOWANCES, self._allowance_key(owner, spender))
        return int(data['amount']) if data else 0

    def total_supply(self) -> int:
        return self._supply()['total_supply']

    def total_minted(self) -> int:
        return self._supply()['total_minted']

    def total_burned(self) -> int:
        return self._supply()['total_burned']

    # Primitives

    def credit(self, address: str, amount: int) -> None:
        amount = require_amount(amount)
        self._set_balance(address, self.balance_of(address) + amount)

    def debit(self, address: str, amount: int) -> None:
        amount = require_amount(amount)
        balance = self.balance_of(address)
        if balance < amount:
            raise InsufficientBalance(
                f"Balance {balance} of {address} is below required {amount}",
                {"address": address, "balance": str(balance), "required": str(amount)}
            )
        self._set_balance(address, balance - amount)

    def move(self, sender: str, recipient: str, amount: int) -> None:
        """Debit sender and credit recipient, emitting Transfer"""
        self.debit(sender, amount)
        self.credit(recipient, amount)
        self._emit(transfer_event(normalize_address(sender), normalize_address(recipient), amount))

    def mint(self, recipient: str, amount: int) -> None:
        """Credit recipient and increase total supply"""
        self.credit(recipient, amount)
        supply = self._supply()
        supply['total_supply'] += amount
        supply['total_minted'] += amount
        self._save_supply(supply)
        self._emit(transfer_event(ZERO_ADDRESS, normalize_address(recipient), amount))

    def burn(self, holder: str, amount: int) -> None:
        """Debit holder and decrease total supply"""
        self.debit(holder, amount)
        supply = self._supply()
        supply['total_supply'] -= amount
        supply['total_burned'] += amount
        self._save_supply(supply)
        self._emit(transfer_event(normalize_address(holder), ZERO_ADDRESS, amount))

    def approve(self, owner: str, spender: str, amount: int) -> None:
        amount = require_amount(amount)
        owner, spender = normalize_address(owner), normalize_address(spender)
        self.storage.save(self.ALLOWANCES, self._allowance_key(owner, spender), {
            'owner': owner,
            'spender': spender,
            'amount': str(amount)
        })
        self._emit(approval_event(owner, spender, amount))

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        """Decrease allowance by amount, failing if it is too small"""
        amount = require_amount(amount)
        current = self.allowance(owner, spender)
        if current < amount:
            raise InsufficientAllowance(
                f"Allowance {current} granted by {owner} to {spender} is below {amount}",
                {"owner": owner, "spender": spender, "allowance": str(current), "required": str(amount)}
            )
        owner, spender = normalize_address(owner), normalize_address(spender)
        self.storage.save(self.ALLOWANCES, self._allowance_key(owner, spender), {
            'owner': owner,
            'spender': spender,
            'amount': str(current - amount)
        })

    def sum_of_balances(self) -> int:
        return sum(int(record['balance']) for record in self.storage.load_all(self.BALANCES))

    # Internals

    def _set_balance(self, address: str, balance: int) -> None:
        address = normalize_address(address)
        self.storage.save(self.BALANCES, address, {'address': address, 'balance': str(balance)})

    def _supply(self) -> Dict[str, int]:
        data = self.storage.load(self.SUPPLY, self.SUPPLY_KEY)
        if not data:
            return {'total_supply': 0, 'total_minted': 0, 'total_burned': 0}
        return {key: int(data[key]) for key in ('total_supply', 'total_minted', 'total_burned')}

    def _save_supply(self, supply: Dict[str, int]) -> None:
        self.storage.save(self.SUPPLY, self.SUPPLY_KEY, {k: str(v) for k, v in supply.items()})

    @staticmethod
    def _allowance_key(owner: str, spender: str) -> str:
        return f"{normalize_address(owner)}:{normalize_address(spender)}"
