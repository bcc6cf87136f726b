"""Accounts, sessions and the identity guard."""
import hashlib
import hmac
import logging
import os
from typing import Optional

from fastapi import Depends
from pydantic import ValidationError

from config import settings
from database import ACCOUNTS, RecordStore, get_store, new_id
from errors import Conflict, NotAuthenticated, PermissionDenied, ValidationFailed
from schemas import Account, Session

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        salt_hex, digest_hex = password_hash.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(candidate.hex(), digest_hex)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_email_domain(email: str, domain: Optional[str] = None) -> None:
    domain = domain or settings.allowed_email_domain
    if not normalize_email(email).endswith("@" + domain):
        raise ValidationFailed(f"Only @{domain} email addresses are allowed.")


def find_account_by_email(store: RecordStore, email: str) -> Optional[Account]:
    return store.find_one(ACCOUNTS, {"email": normalize_email(email)})


def register(store: RecordStore, name: str, email: str, password: str,
             confirm_password: Optional[str] = None) -> Account:
    """Create a pending account for an institutional email address."""
    check_email_domain(email)
    if confirm_password is not None and password != confirm_password:
        raise ValidationFailed("Passwords do not match.")
    if not name.strip():
        raise ValidationFailed("Name is required.")
    if find_account_by_email(store, email):
        raise Conflict("Email already registered.")

    try:
        account = Account(
            id=new_id(),
            name=name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role="user",
            status="pending",
        )
    except ValidationError:
        raise ValidationFailed("Please enter a valid email address.")
    store.create_document(ACCOUNTS, account)
    logger.info("Registered account %s (pending approval)", account.id)
    return account


def login(store: RecordStore, email: str, password: str) -> Account:
    check_email_domain(email)
    account = find_account_by_email(store, email)
    if not account:
        raise NotAuthenticated("User not found. Please register first.")
    if not verify_password(password, account.password_hash):
        raise NotAuthenticated("Incorrect password.")
    if account.status == "pending":
        raise PermissionDenied("Your account is pending admin approval.")
    if account.status == "rejected":
        raise PermissionDenied("Your registration has been rejected.")

    store.set_session(Session(account_id=account.id))
    logger.info("Account %s signed in", account.id)
    return account


def logout(store: RecordStore) -> None:
    store.clear_session()


def update_profile(store: RecordStore, account: Account, name: str) -> Account:
    if not name.strip():
        raise ValidationFailed("Name is required.")
    return store.update_document(ACCOUNTS, account.id, {"name": name.strip()})


def change_password(store: RecordStore, account: Account, current_password: str,
                    new_password: str, confirm_password: str) -> None:
    if new_password != confirm_password:
        raise ValidationFailed("New passwords do not match.")
    stored = store.find_document(ACCOUNTS, account.id)
    if not stored or not verify_password(current_password, stored.password_hash):
        raise ValidationFailed("Current password is incorrect.")
    store.update_document(ACCOUNTS, account.id, {"password_hash": hash_password(new_password)})
    logger.info("Password changed for account %s", account.id)


class SessionGuard:
    """
    Resolves the signed-in account from the stored session.

    Role and status are separate axes, but both predicates require an
    approved account: a pending or rejected admin is not treated as admin.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.account: Optional[Account] = self._resolve()

    def _resolve(self) -> Optional[Account]:
        session = self.store.get_session()
        if session is None:
            return None
        account = self.store.find_document(ACCOUNTS, session.account_id)
        if account is None:
            logger.warning("Session references unknown account %s; clearing it", session.account_id)
            self.store.clear_session()
        return account

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None and self.account.status == "approved"

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.account.role == "admin"

    def require_authenticated(self) -> Account:
        if not self.is_authenticated:
            raise NotAuthenticated("Please log in to continue.")
        return self.account

    def require_admin(self) -> Account:
        account = self.require_authenticated()
        if not self.is_admin:
            raise PermissionDenied("Administrator access required.")
        return account


def get_guard(store: RecordStore = Depends(get_store)) -> SessionGuard:
    return SessionGuard(store)


def current_user(guard: SessionGuard = Depends(get_guard)) -> Account:
    return guard.require_authenticated()


def current_admin(guard: SessionGuard = Depends(get_guard)) -> Account:
    return guard.require_admin()
