"""
Request and response bodies for the invitation API.

Field limits mirror what the public forms accept; anything past them is
rejected with 422 before reaching the access services.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Public: forwarding ---


class PartyIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=254)
    company: Optional[str] = Field(None, max_length=200)


class ForwardRequest(BaseModel):
    forwarder: PartyIn
    recipient: PartyIn


class ForwardResponse(BaseModel):
    success: bool = True
    token_id: int
    depth: int
    expires_at: datetime
    message: str


# --- Public: verification ---


class OTPRequestResponse(BaseModel):
    success: bool = True
    masked_email: str
    expires_in_minutes: int


class OTPVerifyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


class OTPVerifyResponse(BaseModel):
    verified: bool = True
    assertion: str
    expires_in: int


# --- Public: RSVP ---


class RSVPRequest(BaseModel):
    status: Literal["attending", "declined"]
    comments: Optional[str] = Field(None, max_length=2000)
    plus_one_name: Optional[str] = Field(None, max_length=200)
    plus_one_email: Optional[str] = Field(None, max_length=254)


class RSVPResponseOut(BaseModel):
    success: bool = True
    status: str
    response_count: int
    responded_at: datetime


# --- Staff ---


class CreateShareRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    name: Optional[str] = Field(None, max_length=200)
    company: Optional[str] = Field(None, max_length=200)
    kind: Literal["share", "rsvp"] = "share"
    ttl_days: Optional[int] = Field(None, ge=1, le=365)


class CreateShareResponse(BaseModel):
    token_id: int
    share_url: str
    expires_at: datetime


class TokenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    depth: int
    parent_token_id: Optional[int] = None
    issued_for_contact_id: Optional[int] = None
    forwarded_by_name: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    revoked: bool
    access_count: int
    last_accessed_at: Optional[datetime] = None


class TokenListResponse(BaseModel):
    tokens: List[TokenOut]


class RevokeResponse(BaseModel):
    token_id: int
    revoked: bool
    changed: bool
