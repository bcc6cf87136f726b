"""
Record Schemas for the Campus Marketplace

Each stored Pydantic model maps to one record-store collection
(accounts, listings, messages, current_session). Records are parsed
through these models whenever they are read back from storage.
"""

from datetime import datetime, timezone
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

CATEGORIES = [
    "Textbooks",
    "Notes",
    "Electronics",
    "Stationery",
    "Lab Equipment",
    "Furniture",
    "Sports Gear",
    "Clothing",
    "Project Materials",
    "Study Guides",
    "Calculators",
    "Room Essentials",
    "Other",
]

CONDITIONS = ["New", "Like New", "Good", "Fair", "Poor"]

ALL_CATEGORIES = "All Categories"
ALL_TYPES = "all"

MAX_MESSAGE_LENGTH = 5000

Role = Literal['user', 'admin']
AccountStatus = Literal['pending', 'approved', 'rejected']
ListingType = Literal['sell', 'rent', 'share']


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # stored timestamps without an offset are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# One moderation decision, kept on the account as an audit trail
class StatusChange(BaseModel):
    status: AccountStatus
    changed_at: datetime = Field(default_factory=utcnow)
    changed_by: Optional[str] = Field(None, description="Admin account id")

# Community members and administrators
class Account(BaseModel):
    id: str
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Institutional email address")
    password_hash: str = Field(..., description="Salted PBKDF2 hash of password")
    role: Role = Field('user')
    status: AccountStatus = Field('pending')
    created_at: datetime = Field(default_factory=utcnow)
    status_history: List[StatusChange] = Field(default_factory=list)

    def public(self) -> dict:
        return self.model_dump(mode="json", exclude={"password_hash"})

# Items offered for sale, rent or free sharing
class Listing(BaseModel):
    id: str
    title: str = Field(..., min_length=1, max_length=140)
    description: str = Field(..., max_length=5000)
    price: float = Field(..., ge=0)
    type: ListingType = Field('sell')
    category: str = Field(..., description="One of CATEGORIES")
    condition: Optional[str] = None
    owner_id: str = Field(..., description="Owner account id")
    owner_name: str
    created_at: datetime = Field(default_factory=utcnow)
    image: Optional[str] = Field(None, description="Image as a data URL")

    @model_validator(mode="after")
    def drop_condition_for_share(self):
        if self.type == 'share':
            self.condition = None
        return self

# Direct messages between buyer and seller tied to a listing
class Message(BaseModel):
    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    receiver_name: str
    listing_id: str
    listing_title: str
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = Field(False)

    @field_validator("timestamp")
    @classmethod
    def aware_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)

# The single signed-in session of this store
class Session(BaseModel):
    account_id: str
    started_at: datetime = Field(default_factory=utcnow)

# Derived view, never stored
class Conversation(BaseModel):
    counterpart_id: str
    counterpart_name: str
    listing_id: str
    listing_title: str
    last_message_time: datetime
    unread_count: int = 0

    @field_validator("last_message_time")
    @classmethod
    def aware_last_message_time(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def key(self):
        return (self.counterpart_id, self.listing_id)


# Request bodies
class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=1)
    confirm_password: Optional[str] = None

class LoginBody(BaseModel):
    email: str
    password: str

class ProfileBody(BaseModel):
    name: str = Field(..., min_length=1)

class ChangePasswordBody(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=1)
    confirm_password: str

class CreateListingBody(BaseModel):
    title: str = Field(..., min_length=1, max_length=140)
    description: str = Field(..., max_length=5000)
    price: float = Field(0, ge=0)
    type: ListingType = Field('sell')
    category: str
    condition: Optional[str] = None
    image: Optional[str] = None

class ContactSellerBody(BaseModel):
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)

class ReplyBody(BaseModel):
    counterpart_id: str
    listing_id: str
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
