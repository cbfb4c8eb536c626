"""
Fee-Transfer Engine

Every transfer carries a fee of TRANSFER_FEE_RATE percent of the gross amount.
BURN_RATE percent of that fee is destroyed, the rest goes to the fee
recipient, and the recipient of the transfer receives what is left.

All arithmetic is integer floor division, in this order, so results are
reproducible and truncation always favours the sender:

    fee   = amount * TRANSFER_FEE_RATE // 100
    burn  = fee * BURN_RATE // 100
    share = fee - burn
    net   = amount - fee

For amount=1000: fee=100, burn=50, share=50, net=900.
"""

from dataclasses import dataclass
from typing import Callable

from .addresses import is_zero_address
from .base_ledger import BaseLedger, require_amount
from .errors import InsufficientBalance, ZeroAddress

TRANSFER_FEE_RATE = 10  # percent of the gross amount
BURN_RATE = 50          # percent of the fee


@dataclass(frozen=True)
class FeeSplit:
    """How a gross transfer amount is divided"""
    amount: int
    fee: int
    burn: int
    fee_recipient_share: int
    net: int

    def to_dict(self):
        return {
            'amount': str(self.amount),
            'fee': str(self.fee),
            'burn': str(self.burn),
            'fee_recipient_share': str(self.fee_recipient_share),
            'net': str(self.net)
        }


def compute_fee_split(amount: int) -> FeeSplit:
    amount = require_amount(amount)
    fee = amount * TRANSFER_FEE_RATE // 100
    burn = fee * BURN_RATE // 100
    return FeeSplit(
        amount=amount,
        fee=fee,
        burn=burn,
        fee_recipient_share=fee - burn,
        net=amount - fee
    )


class FeeTransferEngine:
    """
    Applies fee-adjusted transfers through the base ledger.

    The engine does no locking of its own; the caller runs ``transfer`` inside
    a storage transaction so that a failure at any step leaves nothing behind.
    """

    def __init__(self, base_ledger: BaseLedger, fee_recipient: Callable[[], str]):
        self.base_ledger = base_ledger
        self._fee_recipient = fee_recipient

    def transfer(self, sender: str, recipient: str, amount: int) -> FeeSplit:
        if is_zero_address(sender):
            raise ZeroAddress("Transfer from the zero address", {"sender": sender})
        if is_zero_address(recipient):
            raise ZeroAddress("Transfer to the zero address", {"recipient": recipient})

        split = compute_fee_split(amount)

        balance = self.base_ledger.balance_of(sender)
        if balance < split.amount:
            raise InsufficientBalance(
                f"Balance {balance} of {sender} is below transfer amount {split.amount}",
                {"address": sender, "balance": str(balance), "required": str(split.amount)}
            )

        if split.burn > 0:
            self.base_ledger.burn(sender, split.burn)
        if split.fee_recipient_share > 0:
            self.base_ledger.move(sender, self._fee_recipient(), split.fee_recipient_share)
        self.base_ledger.move(sender, recipient, split.net)

        return split
