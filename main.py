import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import auth
import catalog
import conversations
import moderation
from auth import SessionGuard, current_admin, current_user, get_guard
from config import settings
from database import RecordStore, get_store
from errors import MarketplaceError, NotFound
from schemas import (
    ALL_CATEGORIES,
    ALL_TYPES,
    CATEGORIES,
    CONDITIONS,
    Account,
    ChangePasswordBody,
    ContactSellerBody,
    CreateListingBody,
    LoginBody,
    ProfileBody,
    RegisterBody,
    ReplyBody,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    moderation.ensure_admin(get_store())
    yield


app = FastAPI(title="Campus Marketplace API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Auth Endpoints
@app.post("/api/auth/register")
def register(body: RegisterBody, store: RecordStore = Depends(get_store)):
    account = auth.register(store, body.name, body.email, body.password, body.confirm_password)
    return {"id": account.id, "name": account.name, "email": account.email, "status": account.status}

@app.post("/api/auth/login")
def login(body: LoginBody, store: RecordStore = Depends(get_store)):
    account = auth.login(store, body.email, body.password)
    return account.public()

@app.post("/api/auth/logout")
def logout(store: RecordStore = Depends(get_store)):
    auth.logout(store)
    return {"status": "logged_out"}

@app.get("/api/auth/me")
def me(guard: SessionGuard = Depends(get_guard)):
    return {
        "account": guard.account.public() if guard.account else None,
        "is_authenticated": guard.is_authenticated,
        "is_admin": guard.is_admin,
    }


# Profile
@app.patch("/api/profile")
def update_profile(body: ProfileBody, user: Account = Depends(current_user), store: RecordStore = Depends(get_store)):
    return auth.update_profile(store, user, body.name).public()

@app.post("/api/profile/password")
def change_password(body: ChangePasswordBody, user: Account = Depends(current_user),
                    store: RecordStore = Depends(get_store)):
    auth.change_password(store, user, body.current_password, body.new_password, body.confirm_password)
    return {"status": "password_changed"}


# Listings Endpoints
@app.get("/api/listings")
def list_listings(q: Optional[str] = None, category: str = ALL_CATEGORIES,
                  listing_type: str = Query(ALL_TYPES, alias="type"), store: RecordStore = Depends(get_store)):
    # unknown categories fall back to no category filter
    if category not in CATEGORIES:
        category = ALL_CATEGORIES
    items = catalog.filter_listings(catalog.all_listings(store), q or "", category, listing_type)
    return {"items": [l.model_dump(mode="json") for l in items]}

@app.get("/api/listings/categories")
def list_categories():
    return {"categories": [ALL_CATEGORIES] + CATEGORIES, "conditions": CONDITIONS}

@app.get("/api/listings/{listing_id}")
def get_listing(listing_id: str, store: RecordStore = Depends(get_store)):
    listing = catalog.get_listing(store, listing_id)
    return {"item": listing.model_dump(mode="json") if listing else None}

@app.post("/api/listings")
def create_listing(body: CreateListingBody, user: Account = Depends(current_user),
                   store: RecordStore = Depends(get_store)):
    listing = catalog.create_listing(store, user, body)
    return {"id": listing.id}

@app.delete("/api/listings/{listing_id}")
def delete_listing(listing_id: str, user: Account = Depends(current_user), store: RecordStore = Depends(get_store)):
    catalog.delete_listing(store, user, listing_id)
    return {"status": "deleted"}


# Dashboard
def dashboard(store: RecordStore, account: Account) -> dict:
    return {
        "listings": [l.model_dump(mode="json") for l in catalog.listings_for_owner(store, account.id)],
        "unread_messages": [m.model_dump(mode="json") for m in conversations.unread_messages(store, account.id)],
    }

@app.get("/api/dashboard")
def get_dashboard(user: Account = Depends(current_user), store: RecordStore = Depends(get_store)):
    return dashboard(store, user)


# Messaging
@app.post("/api/listings/{listing_id}/messages")
def contact_seller(listing_id: str, body: ContactSellerBody, user: Account = Depends(current_user),
                   store: RecordStore = Depends(get_store)):
    message = conversations.contact_seller(store, user, listing_id, body.content)
    return {"id": message.id}

@app.get("/api/messages/conversations")
def list_conversations(user: Account = Depends(current_user), store: RecordStore = Depends(get_store)):
    inbox = conversations.Inbox(store, user)
    items = inbox.load()
    return {"items": [c.model_dump(mode="json") for c in items], "unread_total": inbox.unread_total}

def _open_conversation(store: RecordStore, user: Account, counterpart_id: str, listing_id: str):
    inbox = conversations.Inbox(store, user)
    inbox.load()
    conversation = inbox.find(counterpart_id, listing_id)
    if conversation is None:
        raise NotFound("Conversation not found")
    inbox.select(conversation)
    return inbox

@app.get("/api/messages/thread")
def get_thread(counterpart_id: str, listing_id: str, user: Account = Depends(current_user),
               store: RecordStore = Depends(get_store)):
    inbox = _open_conversation(store, user, counterpart_id, listing_id)
    return {
        "conversation": inbox.selected.model_dump(mode="json"),
        "items": [m.model_dump(mode="json") for m in inbox.thread],
    }

@app.post("/api/messages/reply")
def reply(body: ReplyBody, user: Account = Depends(current_user), store: RecordStore = Depends(get_store)):
    inbox = _open_conversation(store, user, body.counterpart_id, body.listing_id)
    message = inbox.reply(body.content)
    return {"id": message.id, "items": [m.model_dump(mode="json") for m in inbox.thread]}


# Admin Moderation
@app.get("/api/admin/accounts")
def admin_accounts(admin: Account = Depends(current_admin), store: RecordStore = Depends(get_store)):
    return {
        "pending": [a.public() for a in moderation.pending_accounts(store)],
        "members": [a.public() for a in moderation.member_accounts(store)],
    }

@app.post("/api/admin/accounts/{account_id}/approve")
def approve_account(account_id: str, admin: Account = Depends(current_admin), store: RecordStore = Depends(get_store)):
    return moderation.approve_account(store, admin, account_id).public()

@app.post("/api/admin/accounts/{account_id}/reject")
def reject_account(account_id: str, admin: Account = Depends(current_admin), store: RecordStore = Depends(get_store)):
    return moderation.reject_account(store, admin, account_id).public()

@app.get("/api/admin/listings")
def admin_listings(admin: Account = Depends(current_admin), store: RecordStore = Depends(get_store)):
    return {"items": [l.model_dump(mode="json") for l in catalog.all_listings(store)]}

@app.delete("/api/admin/listings/{listing_id}")
def admin_delete_listing(listing_id: str, admin: Account = Depends(current_admin),
                         store: RecordStore = Depends(get_store)):
    moderation.delete_any_listing(store, admin, listing_id)
    return {"status": "deleted"}


@app.get("/")
def read_root():
    return {"message": "Campus Marketplace backend running"}

@app.get("/test")
def test_store(store: RecordStore = Depends(get_store)):
    response = {
        "backend": "Running",
        "store": store.backend.name,
        "database_name": settings.database_name if store.backend.name == "mongo" else None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = store.collection_names()[:10]
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Record store check failed: %s", e)
        response["connection_status"] = f"Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
