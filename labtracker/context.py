from dataclasses import dataclass
from typing import Optional

from labtracker.impersonation import ImpersonatedUser, ImpersonationSession
from labtracker import repository


@dataclass
class RequestContext:
    """Caller identity resolved once per request"""
    user_id: str
    email: Optional[str] = None
    role: str = repository.DEFAULT_ROLE
    impersonated: Optional[ImpersonatedUser] = None

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_lab(self):
        return self.role == "lab"

    @property
    def is_subscriber(self):
        return self.role == "subscriber"

    @property
    def is_impersonating_customer(self):
        return self.impersonated is not None and self.impersonated.type == "customer"

    @property
    def is_impersonating_lab(self):
        return self.impersonated is not None and self.impersonated.type == "lab"

    @property
    def target_lab_id(self):
        """Lab an admin is acting as, None otherwise"""
        if self.is_impersonating_lab:
            return self.impersonated.lab_id
        return None

    @property
    def target_user_id(self):
        if self.is_impersonating_customer:
            return self.impersonated.id
        return self.user_id

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "target_user_id": self.target_user_id,
            "target_lab_id": self.target_lab_id,
            "impersonating": self.impersonated.to_dict() if self.impersonated else None,
        }


def resolve_context(claims, storage):
    """Build the context from verified token claims and session storage.

    Impersonation state is ignored unless the caller is an admin.
    """
    user_id = claims.get("sub")
    role = repository.get_user_role(user_id)
    impersonated = None
    if role == "admin":
        impersonated = ImpersonationSession(storage).current()
    return RequestContext(
        user_id=user_id,
        email=claims.get("email"),
        role=role,
        impersonated=impersonated,
    )
