"""
Supply-Capped Minter

Issuance is limited to registered controllers and can never push total
supply past MAXIMUM_SUPPLY.
"""

from .access_control import AccessControl
from .addresses import is_zero_address
from .base_ledger import BaseLedger, require_amount
from .errors import SupplyCeilingExceeded, ZeroAddress

DECIMALS = 18
MAXIMUM_SUPPLY = 500_000_000 * 10 ** DECIMALS


class SupplyCappedMinter:

    def __init__(self, base_ledger: BaseLedger, access_control: AccessControl,
                 maximum_supply: int = MAXIMUM_SUPPLY):
        self.base_ledger = base_ledger
        self.access_control = access_control
        self.maximum_supply = maximum_supply

    def remaining_supply(self) -> int:
        return self.maximum_supply - self.base_ledger.total_supply()

    def check_headroom(self, amount: int) -> None:
        supply = self.base_ledger.total_supply()
        if supply + amount > self.maximum_supply:
            raise SupplyCeilingExceeded(
                f"Minting {amount} would raise supply {supply} above {self.maximum_supply}",
                {"amount": str(amount), "total_supply": str(supply),
                 "maximum_supply": str(self.maximum_supply)}
            )

    def mint(self, caller: str, to: str, amount: int) -> None:
        """Controller-only issuance; owner status alone is not enough"""
        self.access_control.require_controller(caller)
        self.issue(to, amount)

    def issue(self, to: str, amount: int) -> None:
        """Ceiling-checked mint without the controller gate, used at construction"""
        amount = require_amount(amount)
        if is_zero_address(to):
            raise ZeroAddress("Mint to the zero address", {"to": to})
        self.check_headroom(amount)
        self.base_ledger.mint(to, amount)
