"""
Shared fixtures for the token ledger test suite
"""

import pytest

from token_ledger.audit import AuditTrail
from token_ledger.config import TokenLedgerConfig
from token_ledger.events import EventDispatcher, EventLog
from token_ledger.storage import InMemoryStorage
from token_ledger.token import TokenLedger

OWNER = "0x" + "11" * 20
FEE_RECIPIENT = "0x" + "fe" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20
CONTROLLER = "0x" + "cc" * 20


@pytest.fixture
def storage():
    """Create in-memory storage for tests"""
    return InMemoryStorage()


@pytest.fixture
def audit(storage):
    """Create audit trail for tests"""
    return AuditTrail(storage)


@pytest.fixture
def config():
    return TokenLedgerConfig(database_url="memory://", token_name="Test Token", token_symbol="TST")


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def event_log(dispatcher):
    log = EventLog()
    dispatcher.subscribe_all(log)
    return log


@pytest.fixture
def ledger(storage, dispatcher, config):
    """Ledger created by OWNER with FEE_RECIPIENT, full supply minted to OWNER"""
    return TokenLedger.create(OWNER, FEE_RECIPIENT, storage=storage,
                              event_dispatcher=dispatcher, config=config)
