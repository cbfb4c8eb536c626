"""
Ledger error taxonomy.

Every rejected operation raises one of these so callers can assert on the
cause. They subclass ValueError, which is what the rest of the ledger raises
for invalid input.
"""

from typing import Any, Dict, Optional


class TokenError(ValueError):
    """Base class for all ledger rejections"""

    code = "token_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ZeroAddress(TokenError):
    """An address argument is the null address where a real account is required"""
    code = "zero_address"


class InvalidAddress(ZeroAddress):
    """Null address passed to an admin setter"""
    code = "invalid_address"


class Unauthorized(TokenError):
    """Caller lacks owner or controller privilege"""
    code = "unauthorized"


class InsufficientBalance(TokenError):
    code = "insufficient_balance"


class InsufficientAllowance(TokenError):
    code = "insufficient_allowance"


class SupplyCeilingExceeded(TokenError):
    code = "supply_ceiling_exceeded"


class NotAController(TokenError):
    code = "not_a_controller"


class InvalidAmount(TokenError):
    """Amount is negative or not an integer number of base units"""
    code = "invalid_amount"


class LedgerNotInitialized(TokenError):
    code = "ledger_not_initialized"


class LedgerAlreadyInitialized(TokenError):
    code = "ledger_already_initialized"
