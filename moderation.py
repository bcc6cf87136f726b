"""Admin moderation: account approval and listing removal."""
import logging
from typing import List

from auth import find_account_by_email, hash_password, normalize_email
from catalog import remove_listing
from config import Settings, settings
from database import ACCOUNTS, RecordStore, new_id
from errors import NotFound, ValidationFailed
from schemas import Account, AccountStatus, StatusChange

logger = logging.getLogger(__name__)


def pending_accounts(store: RecordStore) -> List[Account]:
    return store.get_documents(ACCOUNTS, {"status": "pending"})


def member_accounts(store: RecordStore) -> List[Account]:
    return [a for a in store.get_documents(ACCOUNTS) if a.role != "admin"]


def _set_status(store: RecordStore, admin: Account, account_id: str, status: AccountStatus) -> Account:
    account = store.find_document(ACCOUNTS, account_id)
    if account is None:
        raise NotFound("Account not found")
    if account.id == admin.id:
        raise ValidationFailed("Administrators cannot moderate their own account.")
    if account.status == "rejected" and status == "approved":
        logger.warning("Account %s was previously rejected; approving it now", account.id)

    history = account.status_history + [StatusChange(status=status, changed_by=admin.id)]
    updated = store.update_document(ACCOUNTS, account.id, {"status": status, "status_history": history})
    logger.info("Account %s %s by %s", account.id, status, admin.id)
    return updated


def approve_account(store: RecordStore, admin: Account, account_id: str) -> Account:
    return _set_status(store, admin, account_id, "approved")


def reject_account(store: RecordStore, admin: Account, account_id: str) -> Account:
    return _set_status(store, admin, account_id, "rejected")


def delete_any_listing(store: RecordStore, admin: Account, listing_id: str) -> None:
    remove_listing(store, listing_id)
    logger.info("Listing %s removed by admin %s", listing_id, admin.id)


def ensure_admin(store: RecordStore, config: Settings = settings):
    """Create the configured administrator account if it does not exist yet."""
    if not (config.admin_email and config.admin_password):
        return None
    existing = find_account_by_email(store, config.admin_email)
    if existing:
        return existing

    admin = Account(
        id=new_id(),
        name=config.admin_name,
        email=normalize_email(config.admin_email),
        password_hash=hash_password(config.admin_password),
        role="admin",
        status="approved",
        status_history=[StatusChange(status="approved")],
    )
    store.create_document(ACCOUNTS, admin)
    logger.info("Bootstrapped admin account %s", admin.email)
    return admin
