"""
Token Ledger

A fungible-token accounting ledger with a burn/redistribution transfer fee,
a hard supply ceiling and owner/controller access control, backed by
transactional storage and a hash-chained audit trail.
"""

__version__ = "1.0.0"
