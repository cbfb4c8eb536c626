"""
Access Control Module

A single owner gates administration; a revocable set of controllers gates
minting. Ownership does not imply controller membership.
"""

from datetime import datetime, timezone
from typing import Optional

from .addresses import is_zero_address, normalize_address
from .base_ledger import EventSink
from .errors import InvalidAddress, NotAController, Unauthorized
from .events import controller_added_event, controller_removed_event, ownership_transferred_event
from .storage import StorageInterface


class ControllerSet:
    """
    Controller membership flags keyed by address.

    Removal clears the flag but keeps the record, so a former controller is
    still known to the store and simply reports as a non-member.
    """

    TABLE = "controllers"

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def is_member(self, address: str) -> bool:
        data = self.storage.load(self.TABLE, normalize_address(address))
        return bool(data and data.get('is_controller'))

    def add(self, address: str) -> None:
        self._set(address, True)

    def remove(self, address: str) -> None:
        self._set(address, False)

    def _set(self, address: str, flag: bool) -> None:
        address = normalize_address(address)
        self.storage.save(self.TABLE, address, {
            'address': address,
            'is_controller': flag,
            'updated_at': datetime.now(timezone.utc).isoformat()
        })


class AccessControl:
    """Owner and controller checks plus the owner-only membership mutations"""

    TABLE = "access_control"
    OWNER_KEY = "owner"

    def __init__(self, storage: StorageInterface, emit: Optional[EventSink] = None):
        self.storage = storage
        self.controllers = ControllerSet(storage)
        self._emit = emit or (lambda event: None)

    def owner(self) -> Optional[str]:
        data = self.storage.load(self.TABLE, self.OWNER_KEY)
        return data['address'] if data else None

    def initialize_owner(self, owner: str) -> None:
        self.storage.save(self.TABLE, self.OWNER_KEY, {'address': normalize_address(owner)})

    def require_owner(self, caller: str) -> None:
        owner = self.owner()
        if owner is None or normalize_address(caller) != owner:
            raise Unauthorized(f"{caller} is not the owner", {"caller": caller})

    def require_controller(self, caller: str) -> None:
        if not self.controllers.is_member(caller):
            raise Unauthorized(f"{caller} is not a controller", {"caller": caller})

    def is_controller(self, address: str) -> bool:
        return self.controllers.is_member(address)

    def add_controller(self, caller: str, controller: str) -> None:
        """Grant minting rights. Adding an existing controller succeeds and re-emits."""
        self.require_owner(caller)
        if is_zero_address(controller):
            raise InvalidAddress("Controller cannot be the zero address", {"controller": controller})

        self.controllers.add(controller)
        self._emit(controller_added_event(normalize_address(controller)))

    def remove_controller(self, caller: str, controller: str) -> None:
        self.require_owner(caller)
        if not self.controllers.is_member(controller):
            raise NotAController(f"{controller} is not a controller", {"controller": controller})

        self.controllers.remove(controller)
        self._emit(controller_removed_event(normalize_address(controller)))

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand administration to new_owner; returns the previous owner"""
        self.require_owner(caller)
        if is_zero_address(new_owner):
            raise InvalidAddress("New owner cannot be the zero address", {"new_owner": new_owner})

        previous = self.owner()
        self.initialize_owner(new_owner)
        self._emit(ownership_transferred_event(previous, normalize_address(new_owner)))
        return previous
