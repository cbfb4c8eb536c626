"""
Token Ledger

The public operation surface. A TokenLedger owns one storage backend and
wires the base ledger, access control, fee-transfer engine and minter
together over it.

Each public operation runs inside a single storage transaction: it either
commits completely or raises and leaves the ledger exactly as it was. The
transaction holds the storage lock, so ledger objects attached to the same
storage never interleave. An operation called inside an enclosing
``storage.atomic()`` block joins it and is undone if that block fails.

Domain events raised during an operation are buffered and published, in
the order they were raised, once the outermost transaction has committed.
"""

import threading
from contextlib import contextmanager
from functools import partial
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .access_control import AccessControl
from .addresses import is_zero_address, normalize_address
from .audit import AuditEventType, AuditTrail
from .base_ledger import BaseLedger
from .config import TokenLedgerConfig, get_config
from .errors import (
    InvalidAddress, LedgerAlreadyInitialized, LedgerNotInitialized,
    TokenError, ZeroAddress
)
from .events import EventDispatcher, EventPayload, fee_recipient_changed_event
from .fee_engine import FeeSplit, FeeTransferEngine
from .logging_config import get_logger, log_action
from .minter import DECIMALS, MAXIMUM_SUPPLY, SupplyCappedMinter
from .storage import StorageInterface, create_storage


class TokenLedger:
    """
    Fee-on-transfer token with a hard supply ceiling.

    Use ``TokenLedger.create`` to build a new ledger (which mints the whole
    MAXIMUM_SUPPLY to the creator) or ``TokenLedger.attach`` to reopen one
    that was persisted earlier.
    """

    STATE_TABLE = "ledger_state"
    METADATA_KEY = "metadata"
    FEE_RECIPIENT_KEY = "fee_recipient"

    def __init__(
        self,
        storage: StorageInterface,
        event_dispatcher: Optional[EventDispatcher] = None,
        config: Optional[TokenLedgerConfig] = None
    ):
        self.config = config or get_config()
        self.storage = storage
        self.event_dispatcher = event_dispatcher or EventDispatcher()
        self.audit_trail = AuditTrail(storage) if self.config.enable_audit_logging else None
        self.logger = get_logger("token_ledger.token")

        self._lock = threading.RLock()
        self._pending_events: List[EventPayload] = []

        self.base_ledger = BaseLedger(storage, emit=self._emit)
        self.access_control = AccessControl(storage, emit=self._emit)
        self.fee_engine = FeeTransferEngine(self.base_ledger, fee_recipient=self.fee_recipient)
        self.minter = SupplyCappedMinter(self.base_ledger, self.access_control, MAXIMUM_SUPPLY)

    # Construction

    @classmethod
    def create(
        cls,
        creator: str,
        fee_recipient: str,
        storage: Optional[StorageInterface] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        config: Optional[TokenLedgerConfig] = None
    ) -> 'TokenLedger':
        """
        Create a new ledger.

        The creator becomes the owner and receives the full MAXIMUM_SUPPLY.

        Raises:
            InvalidAddress: If fee_recipient is the zero address
            ZeroAddress: If creator is the zero address
            LedgerAlreadyInitialized: If storage already holds a ledger
        """
        # Validate before touching storage so a rejected construction creates nothing
        if is_zero_address(fee_recipient):
            raise InvalidAddress("Fee recipient cannot be the zero address",
                                 {"fee_recipient": fee_recipient})
        if is_zero_address(creator):
            raise ZeroAddress("Creator cannot be the zero address", {"creator": creator})

        config = config or get_config()
        if storage is None:
            storage = create_storage(config.database_url)
        ledger = cls(storage, event_dispatcher=event_dispatcher, config=config)
        creator = normalize_address(creator)
        fee_recipient = normalize_address(fee_recipient)

        with ledger._operation("create_ledger", creator, "ledger"):
            if storage.exists(cls.STATE_TABLE, cls.METADATA_KEY):
                raise LedgerAlreadyInitialized("Storage already holds a token ledger")
            storage.save(cls.STATE_TABLE, cls.METADATA_KEY, {
                'name': config.token_name,
                'symbol': config.token_symbol,
                'decimals': DECIMALS,
                'maximum_supply': str(MAXIMUM_SUPPLY),
                'created_at': datetime.now(timezone.utc).isoformat()
            })
            storage.save(cls.STATE_TABLE, cls.FEE_RECIPIENT_KEY, {'address': fee_recipient})
            ledger.access_control.initialize_owner(creator)
            ledger.minter.issue(creator, MAXIMUM_SUPPLY)
            ledger._audit(AuditEventType.LEDGER_CREATED, "ledger", "token", creator, {
                'owner': creator,
                'fee_recipient': fee_recipient,
                'initial_supply': MAXIMUM_SUPPLY
            })

        log_action(
            ledger.logger, "info", f"Ledger created: {config.token_symbol}",
            user_id=creator, action="create_ledger", resource="ledger",
            extra={"fee_recipient": fee_recipient, "initial_supply": str(MAXIMUM_SUPPLY)}
        )
        return ledger

    @classmethod
    def attach(
        cls,
        storage: StorageInterface,
        event_dispatcher: Optional[EventDispatcher] = None,
        config: Optional[TokenLedgerConfig] = None
    ) -> 'TokenLedger':
        """Reopen a ledger previously created on this storage"""
        if not storage.exists(cls.STATE_TABLE, cls.METADATA_KEY):
            raise LedgerNotInitialized("Storage does not hold a token ledger")
        return cls(storage, event_dispatcher=event_dispatcher, config=config)

    # Views

    def _metadata(self) -> Dict[str, Any]:
        return self.storage.load(self.STATE_TABLE, self.METADATA_KEY) or {}

    @property
    def name(self) -> str:
        return self._metadata().get('name', self.config.token_name)

    @property
    def symbol(self) -> str:
        return self._metadata().get('symbol', self.config.token_symbol)

    @property
    def decimals(self) -> int:
        return DECIMALS

    def balance_of(self, address: str) -> int:
        return self.base_ledger.balance_of(address)

    def allowance(self, owner: str, spender: str) -> int:
        return self.base_ledger.allowance(owner, spender)

    def total_supply(self) -> int:
        return self.base_ledger.total_supply()

    def total_minted(self) -> int:
        return self.base_ledger.total_minted()

    def total_burned(self) -> int:
        return self.base_ledger.total_burned()

    def remaining_supply(self) -> int:
        return self.minter.remaining_supply()

    def owner(self) -> Optional[str]:
        return self.access_control.owner()

    def fee_recipient(self) -> Optional[str]:
        data = self.storage.load(self.STATE_TABLE, self.FEE_RECIPIENT_KEY)
        return data['address'] if data else None

    def is_controller(self, address: str) -> bool:
        return self.access_control.is_controller(address)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check the supply invariants:
            sum(balances) + total_burned == total_minted
            sum(balances) == total_supply <= MAXIMUM_SUPPLY
        """
        with self.storage.atomic():
            balances = self.base_ledger.sum_of_balances()
            supply = self.total_supply()
            minted = self.total_minted()
            burned = self.total_burned()

        return {
            'valid': balances + burned == minted and balances == supply and supply <= MAXIMUM_SUPPLY,
            'sum_of_balances': balances,
            'total_supply': supply,
            'total_minted': minted,
            'total_burned': burned,
            'maximum_supply': MAXIMUM_SUPPLY
        }

    # Transfers

    def transfer(self, caller: str, to: str, amount: int) -> FeeSplit:
        """Fee-split transfer of amount from caller to `to`"""
        with self._operation("transfer", caller, f"account:{to}"):
            split = self.fee_engine.transfer(caller, to, amount)
            self._audit_transfer(caller, caller, to, split)

        self._log_transfer("transfer", caller, caller, to, split)
        return split

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> FeeSplit:
        """
        Delegated fee-split transfer.

        The allowance granted by sender to caller is reduced by the gross
        amount, even though `to` only receives the net amount.
        """
        with self._operation("transfer_from", caller, f"account:{sender}"):
            if is_zero_address(sender):
                raise ZeroAddress("Transfer from the zero address", {"sender": sender})
            if is_zero_address(to):
                raise ZeroAddress("Transfer to the zero address", {"recipient": to})

            self.base_ledger.spend_allowance(sender, caller, amount)
            split = self.fee_engine.transfer(sender, to, amount)
            self._audit_transfer(caller, sender, to, split)

        self._log_transfer("transfer_from", caller, sender, to, split)
        return split

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self._operation("approve", caller, f"account:{caller}"):
            if is_zero_address(caller):
                raise ZeroAddress("Approve from the zero address", {"owner": caller})
            if is_zero_address(spender):
                raise ZeroAddress("Approve to the zero address", {"spender": spender})

            self.base_ledger.approve(caller, spender, amount)
            self._audit(AuditEventType.APPROVAL, "account", normalize_address(caller), caller, {
                'spender': normalize_address(spender),
                'amount': amount
            })

        log_action(
            self.logger, "info", "Allowance set",
            user_id=caller, action="approve", resource=f"account:{caller}",
            extra={"spender": spender, "amount": str(amount)}
        )

    # Issuance

    def mint(self, caller: str, to: str, amount: int) -> None:
        """Controller-only mint, bounded by MAXIMUM_SUPPLY"""
        with self._operation("mint", caller, f"account:{to}"):
            self.minter.mint(caller, to, amount)
            self._audit(AuditEventType.MINT, "account", normalize_address(to), caller, {
                'amount': amount,
                'total_supply': self.total_supply()
            })

        log_action(
            self.logger, "info", "Tokens minted",
            user_id=caller, action="mint", resource=f"account:{to}",
            extra={"amount": str(amount), "total_supply": str(self.total_supply())}
        )

    # Administration

    def set_fee_recipient(self, caller: str, new_recipient: str) -> None:
        with self._operation("set_fee_recipient", caller, "ledger"):
            self.access_control.require_owner(caller)
            if is_zero_address(new_recipient):
                raise InvalidAddress("Fee recipient cannot be the zero address",
                                     {"fee_recipient": new_recipient})

            old = self.fee_recipient()
            new = normalize_address(new_recipient)
            self._emit(fee_recipient_changed_event(old, new))
            self.storage.save(self.STATE_TABLE, self.FEE_RECIPIENT_KEY, {'address': new})
            self._audit(AuditEventType.FEE_RECIPIENT_CHANGED, "ledger", "token", caller, {
                'old': old,
                'new': new
            })

        log_action(
            self.logger, "info", "Fee recipient changed",
            user_id=caller, action="set_fee_recipient", resource="ledger",
            extra={"old": old, "new": new}
        )

    def add_controller(self, caller: str, controller: str) -> None:
        with self._operation("add_controller", caller, f"controller:{controller}"):
            self.access_control.add_controller(caller, controller)
            self._audit(AuditEventType.CONTROLLER_ADDED, "controller",
                        normalize_address(controller), caller)

        log_action(
            self.logger, "info", "Controller added",
            user_id=caller, action="add_controller", resource=f"controller:{controller}"
        )

    def remove_controller(self, caller: str, controller: str) -> None:
        with self._operation("remove_controller", caller, f"controller:{controller}"):
            self.access_control.remove_controller(caller, controller)
            self._audit(AuditEventType.CONTROLLER_REMOVED, "controller",
                        normalize_address(controller), caller)

        log_action(
            self.logger, "info", "Controller removed",
            user_id=caller, action="remove_controller", resource=f"controller:{controller}"
        )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._operation("transfer_ownership", caller, "ledger"):
            previous = self.access_control.transfer_ownership(caller, new_owner)
            self._audit(AuditEventType.OWNERSHIP_TRANSFERRED, "ledger", "token", caller, {
                'previous_owner': previous,
                'new_owner': normalize_address(new_owner)
            })

        log_action(
            self.logger, "info", "Ownership transferred",
            user_id=caller, action="transfer_ownership", resource="ledger",
            extra={"previous_owner": previous, "new_owner": new_owner}
        )

    # Internals

    @contextmanager
    def _operation(self, action: str, caller: str, resource: str):
        """Run one public operation: all-or-nothing, then publish its events"""
        with self._lock:
            self._pending_events = []
            try:
                with self.storage.atomic():
                    yield
                    events, self._pending_events = self._pending_events, []
                    self.storage.on_commit(partial(self._publish, events))
            except TokenError as e:
                self._pending_events = []
                log_action(
                    self.logger, "warning", f"{action} rejected: {e.message}",
                    user_id=caller, action=action, resource=resource,
                    extra={"code": e.code, **e.details}
                )
                raise
            except Exception:
                self._pending_events = []
                self.logger.exception(f"{action} failed and was rolled back")
                raise

    def _emit(self, event: EventPayload) -> None:
        self._pending_events.append(event)

    def _publish(self, events: List[EventPayload]) -> None:
        for event in events:
            self.event_dispatcher.publish(event)

    def _audit(self, event_type: AuditEventType, entity_type: str, entity_id: str,
               caller: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                metadata=metadata,
                user_id=normalize_address(caller)
            )

    def _audit_transfer(self, caller: str, sender: str, to: str, split: FeeSplit) -> None:
        metadata = dict(split.to_dict(), to=normalize_address(to), fee_recipient=self.fee_recipient())
        self._audit(AuditEventType.TRANSFER, "account", normalize_address(sender), caller, metadata)
        if split.burn:
            self._audit(AuditEventType.BURN, "account", normalize_address(sender), caller, {
                'amount': split.burn
            })

    def _log_transfer(self, action: str, caller: str, sender: str, to: str, split: FeeSplit) -> None:
        log_action(
            self.logger, "info", f"Transfer applied: {split.amount} gross, {split.net} net",
            user_id=caller, action=action, resource=f"account:{sender}",
            extra=dict(split.to_dict(), to=to)
        )
