"""
Store-scoped authorization.

Every store route depends on ``require_store_role(...)`` with the roles it
allows; the dependency reads ``store_id`` from the path and checks the
caller's membership in ``store_users``.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.orm import Session

from .auth import get_current_user
from .database import get_db
from .errors import AuthorizationError
from .models import STORE_ROLES, StoreUser, User

logger = logging.getLogger(__name__)

ANY_ROLE = STORE_ROLES
OWNER_OR_MANAGER = ("owner", "manager")
OWNER_ONLY = ("owner",)


@dataclass
class StoreContext:
    user: User
    store_id: str
    role: str


def get_store_role(db: Session, store_id: str, user_id: str):
    membership = (
        db.query(StoreUser)
        .filter(StoreUser.store_id == store_id, StoreUser.user_id == user_id)
        .first()
    )
    return membership.role if membership else None


def require_store_role(*roles: str):
    """Dependency factory: allow members of the path store holding one of ``roles``"""
    allowed = roles or ANY_ROLE

    def dependency(
        store_id: str,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> StoreContext:
        role = get_store_role(db, store_id, current_user.id)
        if role is None:
            logger.warning(f"⚠️ User {current_user.id} has no membership in store {store_id}")
            raise AuthorizationError("You do not have access to this store")
        if role not in allowed:
            logger.warning(
                f"⚠️ User {current_user.id} with role {role} denied; requires {', '.join(allowed)}"
            )
            raise AuthorizationError(
                f"Insufficient permissions. Required role: {' or '.join(allowed)}"
            )
        return StoreContext(user=current_user, store_id=store_id, role=role)

    return dependency
