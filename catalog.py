"""Listing catalog: create, look up, delete and filter listings."""
import logging
from typing import Iterable, List, Optional

from database import LISTINGS, RecordStore, new_id
from errors import NotFound, PermissionDenied, ValidationFailed
from schemas import ALL_CATEGORIES, ALL_TYPES, CATEGORIES, CONDITIONS, Account, CreateListingBody, Listing

logger = logging.getLogger(__name__)


def create_listing(store: RecordStore, owner: Account, body: CreateListingBody) -> Listing:
    if owner.status != "approved":
        raise PermissionDenied("Only approved members can create listings.")
    title = body.title.strip()
    if not title:
        raise ValidationFailed("Title is required.")
    if body.category not in CATEGORIES:
        raise ValidationFailed(f"Unknown category: {body.category}")
    condition = body.condition if body.type != "share" else None
    if condition is not None and condition not in CONDITIONS:
        raise ValidationFailed(f"Unknown condition: {condition}")

    listing = Listing(
        id=new_id(),
        title=title,
        description=body.description,
        price=body.price,
        type=body.type,
        category=body.category,
        condition=condition,
        owner_id=owner.id,
        owner_name=owner.name,
        image=body.image or None,
    )
    store.create_document(LISTINGS, listing)
    logger.info("Listing %s created by %s", listing.id, owner.id)
    return listing


def get_listing(store: RecordStore, listing_id: str) -> Optional[Listing]:
    return store.find_document(LISTINGS, listing_id)


def all_listings(store: RecordStore) -> List[Listing]:
    return store.get_documents(LISTINGS)


def listings_for_owner(store: RecordStore, owner_id: str) -> List[Listing]:
    return store.get_documents(LISTINGS, {"owner_id": owner_id})


def filter_listings(listings: Iterable[Listing], search_term: str = "",
                    category: str = ALL_CATEGORIES, listing_type: str = ALL_TYPES) -> List[Listing]:
    """Apply search, then category, then type; each filter is skipped when unset."""
    result = list(listings)

    term = (search_term or "").strip().lower()
    if term:
        result = [l for l in result if term in l.title.lower() or term in l.description.lower()]

    if category and category != ALL_CATEGORIES:
        result = [l for l in result if l.category == category]

    if listing_type and listing_type != ALL_TYPES:
        result = [l for l in result if l.type == listing_type]

    return result


def remove_listing(store: RecordStore, listing_id: str) -> None:
    if not store.delete_document(LISTINGS, listing_id):
        raise NotFound("Listing not found")
    logger.info("Listing %s deleted", listing_id)


def delete_listing(store: RecordStore, actor: Account, listing_id: str) -> None:
    listing = get_listing(store, listing_id)
    if listing is None:
        raise NotFound("Listing not found")
    if listing.owner_id != actor.id and actor.role != "admin":
        raise PermissionDenied("You can only delete your own listings.")
    remove_listing(store, listing_id)
