"""
Acting identity for cart and order requests.

A shopper is either a signed in user (stable id) or a guest (uuid minted on
the first add-to-cart and echoed back to the client).
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from errors import MissingIdentity


@dataclass(frozen=True)
class UserOwner:
    user_id: str

    kind = "user"

    def filter(self) -> dict:
        return {"user_id": self.user_id}

    def fields(self) -> dict:
        return {"user_id": self.user_id, "guest_id": None}


@dataclass(frozen=True)
class GuestOwner:
    guest_id: str

    kind = "guest"

    def filter(self) -> dict:
        return {"guest_id": self.guest_id}

    def fields(self) -> dict:
        return {"user_id": None, "guest_id": self.guest_id}


Owner = Union[UserOwner, GuestOwner]


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_owner(user_id=None, guest_id=None) -> Owner:
    """Owner for read operations; a user id wins over a guest id."""
    user_id, guest_id = _clean(user_id), _clean(guest_id)
    if user_id:
        return UserOwner(user_id)
    if guest_id:
        return GuestOwner(guest_id)
    raise MissingIdentity()


def resolve_owner_for_write(user_id=None, guest_id=None) -> Tuple[Owner, Optional[str]]:
    """
    Owner for add-to-cart. Mints a guest id when the caller has no identity.

    Returns the owner and the guest id to echo back (None for users who did
    not send one).
    """
    user_id, guest_id = _clean(user_id), _clean(guest_id)
    if user_id:
        return UserOwner(user_id), guest_id
    if not guest_id:
        guest_id = str(uuid.uuid4())
    return GuestOwner(guest_id), guest_id


def owner_of(doc: dict) -> Owner:
    if doc.get("user_id") is not None:
        return UserOwner(str(doc["user_id"]))
    return GuestOwner(doc["guest_id"])


def is_owned_by(doc: dict, user_id=None, guest_id=None) -> bool:
    """
    Check the caller's raw identity against a stored owner.

    Only the stored owner kind is compared: a user-owned row needs the exact
    user id whatever guest id is sent, and a guest-owned row needs the exact
    guest id.
    """
    if doc.get("user_id") is not None:
        return str(doc["user_id"]) == _clean(user_id)
    if doc.get("guest_id") is not None:
        return doc["guest_id"] == _clean(guest_id)
    return False
