"""Support sessions acting as a customer or a lab.

The state lives in a per-session mapping (the Flask session during a
request). Starting one kind of impersonation first removes every key of
the other kind, so at most one is ever active. Changes are published to
subscribers of an ImpersonationBroadcaster.
"""
from dataclasses import dataclass
from typing import Callable, Optional
import logging
import threading

logger = logging.getLogger(__name__)

CUSTOMER_ID_KEY = "impersonatedCustomerId"
CUSTOMER_EMAIL_KEY = "impersonatedCustomerEmail"
CUSTOMER_NAME_KEY = "impersonatedCustomerName"
LAB_ID_KEY = "impersonatedLabId"
LAB_NAME_KEY = "impersonatedLabName"
LAB_ROLE_KEY = "impersonatedLabRole"

CUSTOMER_KEYS = (CUSTOMER_ID_KEY, CUSTOMER_EMAIL_KEY, CUSTOMER_NAME_KEY)
LAB_KEYS = (LAB_ID_KEY, LAB_NAME_KEY, LAB_ROLE_KEY)


@dataclass
class ImpersonatedUser:
    id: str
    email: str
    name: Optional[str]
    type: str  # "customer" | "lab"
    lab_id: Optional[str] = None
    lab_name: Optional[str] = None
    lab_role: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "type": self.type,
            "lab_id": self.lab_id,
            "lab_name": self.lab_name,
            "lab_role": self.lab_role,
        }


class ImpersonationBroadcaster:
    def __init__(self):
        self._listeners = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[Optional[ImpersonatedUser]], None]):
        """Register `callback`; returns a function that unregisters it"""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def publish(self, user):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception as e:
                logger.error(f"Impersonation listener failed: {e}", exc_info=True)


impersonation_events = ImpersonationBroadcaster()


class ImpersonationSession:
    def __init__(self, storage, broadcaster=None):
        self.storage = storage
        self.broadcaster = broadcaster if broadcaster is not None else impersonation_events

    def _clear(self, keys):
        for key in keys:
            self.storage.pop(key, None)

    def current(self):
        customer_id = self.storage.get(CUSTOMER_ID_KEY)
        customer_email = self.storage.get(CUSTOMER_EMAIL_KEY)
        if customer_id and customer_email:
            return ImpersonatedUser(
                id=customer_id,
                email=customer_email,
                name=self.storage.get(CUSTOMER_NAME_KEY) or None,
                type="customer",
            )

        lab_id = self.storage.get(LAB_ID_KEY)
        lab_name = self.storage.get(LAB_NAME_KEY)
        if lab_id and lab_name:
            return ImpersonatedUser(
                id=lab_id,
                email="",
                name=lab_name,
                type="lab",
                lab_id=lab_id,
                lab_name=lab_name,
                lab_role=self.storage.get(LAB_ROLE_KEY),
            )
        return None

    def start_customer(self, user_id, email, name=None):
        self._clear(LAB_KEYS)
        self.storage[CUSTOMER_ID_KEY] = user_id
        self.storage[CUSTOMER_EMAIL_KEY] = email
        self.storage[CUSTOMER_NAME_KEY] = name or ""
        user = self.current()
        self.broadcaster.publish(user)
        return user

    def start_lab(self, lab_id, lab_name, lab_role=None):
        self._clear(CUSTOMER_KEYS)
        self.storage[LAB_ID_KEY] = lab_id
        self.storage[LAB_NAME_KEY] = lab_name
        if lab_role:
            self.storage[LAB_ROLE_KEY] = lab_role
        else:
            self.storage.pop(LAB_ROLE_KEY, None)
        user = self.current()
        self.broadcaster.publish(user)
        return user

    def stop(self):
        self._clear(CUSTOMER_KEYS + LAB_KEYS)
        self.broadcaster.publish(None)

    @property
    def is_impersonating(self):
        return self.current() is not None

    @property
    def is_impersonating_customer(self):
        user = self.current()
        return user is not None and user.type == "customer"

    @property
    def is_impersonating_lab(self):
        user = self.current()
        return user is not None and user.type == "lab"
