"""
Account address helpers.

Addresses are plain strings. The null address is the all-zero 20-byte hex
value; ``None``, the empty string and a bare ``0x`` prefix are treated as
null too.
"""

import re
from typing import Optional

ZERO_ADDRESS = "0x" + "0" * 40

_HEX_ADDRESS = re.compile(r"^0[xX][0-9a-fA-F]+$")


def normalize_address(address: Optional[str]) -> str:
    """Canonical form used as a storage key"""
    if address is None:
        return ""
    address = str(address).strip()
    if _HEX_ADDRESS.match(address):
        return address.lower()
    return address


def is_zero_address(address: Optional[str]) -> bool:
    """True for the null/sentinel address"""
    normalized = normalize_address(address)
    if not normalized or normalized.lower() == "0x":
        return True
    return bool(_HEX_ADDRESS.match(normalized)) and int(normalized, 16) == 0
