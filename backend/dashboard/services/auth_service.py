"""
Authentication Service
Users live in the ``users`` collection, keyed by uid:

    {"email", "role", "clientId", "passwordHash", "verifiedAt", "lastLoggedInAt"}
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from dashboard.config import settings
from dashboard.services.document_store import DocumentStore
from dashboard.utils.security import (
    create_access_token,
    generate_invite_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

USERS = "users"
INVITES = "invites"


class EmailAlreadyExistsError(ValueError):
    pass


class InviteError(Exception):
    """Base class for invite lookups that cannot proceed"""


class InviteNotFoundError(InviteError):
    pass


class InviteExpiredError(InviteError):
    pass


class InviteUsedError(InviteError):
    pass


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def find_user_by_email(store: DocumentStore, email: str) -> Optional[Dict[str, Any]]:
    matches = store.find_documents(USERS, "email", email.lower())
    return matches[0] if matches else None


def authenticate_user(store: DocumentStore, email: str, password: str) -> Optional[Dict[str, Any]]:
    """
    Authenticate a user with email and password

    Returns:
        The user document if authentication succeeded, None otherwise
    """
    user = find_user_by_email(store, email)
    if not user:
        return None

    if not verify_password(password, user.get("passwordHash")):
        return None

    return store.update_document(USERS, user["id"], {"lastLoggedInAt": _now()})


def create_user_token(user: Dict[str, Any]) -> str:
    return create_access_token({
        "sub": user["id"],
        "email": user.get("email"),
        "role": user.get("role"),
        "client_id": user.get("clientId"),
    })


def create_user(
    store: DocumentStore,
    email: str,
    role: str,
    client_id: Optional[str] = None,
    password: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a user document. ``password`` is omitted for invited users, who
    set one when accepting their invite.

    Raises:
        EmailAlreadyExistsError: another user already has this email
    """
    email = email.lower()
    if find_user_by_email(store, email):
        raise EmailAlreadyExistsError(email)

    data: Dict[str, Any] = {
        "email": email,
        "role": role,
        "clientId": client_id if role == "client" else None,
    }
    if password:
        data["passwordHash"] = hash_password(password)
        data["verifiedAt"] = _now()

    user = store.set_document(USERS, None, data)
    logger.info("Created %s user %s", role, user["id"])
    return user


# ─────────────────────────────────────────────
# Invites
# ─────────────────────────────────────────────

def create_invite(store: DocumentStore, email: str, role: str, client_id: Optional[str]) -> Dict[str, Any]:
    """Create the invited user (without a password) and an invite keyed by a random token."""
    user = create_user(store, email, role, client_id)
    token = generate_invite_token()
    expires_at = datetime.utcnow() + timedelta(days=settings.INVITE_EXPIRE_DAYS)
    invite = store.set_document(INVITES, token, {
        "email": user["email"],
        "role": role,
        "clientId": user.get("clientId"),
        "uid": user["id"],
        "expiresAt": expires_at.isoformat() + "Z",
        "usedAt": None,
    })
    return {**invite, "token": token}


def get_valid_invite(store: DocumentStore, token: str) -> Dict[str, Any]:
    """
    Raises:
        InviteNotFoundError: no such token
        InviteExpiredError: past expiresAt
        InviteUsedError: already accepted
    """
    invite = store.get_document(INVITES, token)
    if invite is None:
        raise InviteNotFoundError("Invalid invite token")

    expires_at = datetime.fromisoformat(invite["expiresAt"].rstrip("Z"))
    if expires_at < datetime.utcnow():
        raise InviteExpiredError("Invite has expired")

    if invite.get("usedAt"):
        raise InviteUsedError("Invite has already been used")

    return invite


def accept_invite(store: DocumentStore, token: str, password: str) -> Dict[str, Any]:
    """Set the invited user's password and mark the invite as used."""
    invite = get_valid_invite(store, token)
    user = find_user_by_email(store, invite["email"])
    if user is None:
        raise InviteNotFoundError("User account not found")

    now = _now()
    user = store.update_document(USERS, user["id"], {
        "passwordHash": hash_password(password),
        "verifiedAt": now,
    })
    store.update_document(INVITES, token, {"usedAt": now})
    logger.info("Invite accepted for user %s", user["id"])
    return user
