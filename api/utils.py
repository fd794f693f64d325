from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
# --- Project imports ---
from db.models import CallStatus


# ---------------------------
# Listings
# ---------------------------
class ListingSearch(BaseModel):
    zip_code: str = Field(min_length=3, max_length=10)
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    radius_miles: int = Field(default=50, ge=1, le=500)


class DealerOut(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None

    @field_validator("phone", "latitude", "longitude", mode="before")
    @classmethod
    def _as_str(cls, v):
        # Carfax sends coordinates as numbers or strings depending on the listing
        return None if v is None else str(v)


class ListingOut(BaseModel):
    year: Optional[int] = None
    msrp: Optional[float] = None
    price: Optional[float] = None
    images: List[str] = Field(default_factory=list)
    dealer: DealerOut
    listing_url: Optional[str] = None
    color: Optional[str] = None
    trim: Optional[str] = None
    vin: Optional[str] = None
    stock_number: Optional[str] = None
    model: Optional[str] = None

    @field_validator("stock_number", mode="before")
    @classmethod
    def _stock_str(cls, v):
        return None if v is None else str(v)


# ---------------------------
# Payments
# ---------------------------
class PaymentVerifyIn(BaseModel):
    signature: str
    merchant_address: str = Field(alias="merchantAddress")

    model_config = ConfigDict(populate_by_name=True)


class PaymentVerifyOut(BaseModel):
    valid: bool
    message: str
    amount: Optional[float] = None


class MerchantAddressOut(BaseModel):
    merchant_address: str


# ---------------------------
# Calls
# ---------------------------
class CallRequest(BaseModel):
    year: int
    make: str
    model: str
    zipcode: Optional[str] = None
    dealer_name: str
    msrp: Optional[float] = None
    listing_price: Optional[float] = None
    stock_number: Optional[str] = None
    vin: str
    phone_number: str
    voice_id: Optional[str] = None
    payment_signature: str = Field(alias="paymentSignature")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("zipcode", "stock_number", mode="before")
    @classmethod
    def _as_str(cls, v):
        return None if v is None else str(v)


class CallStatusUpdate(BaseModel):
    status: CallStatus
    transcript_summary: Optional[str] = None
    call_successful: Optional[bool] = None
    confirmed_price: Optional[float] = None


class ExistingCallOut(BaseModel):
    id: str
    status: CallStatus
    confirmed_price: Optional[float] = None


class CallOut(BaseModel):
    id: str
    call_sid: Optional[str] = None
    conversation_id: Optional[str] = None
    vin: Optional[str] = None
    year: int
    make: str
    model: str
    dealer_name: str
    msrp: Optional[float] = None
    listing_price: Optional[float] = None
    stock_number: Optional[str] = None
    phone_number: str
    status: CallStatus
    transcript_summary: Optional[str] = None
    call_successful: Optional[bool] = None
    confirmed_price: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class DealOut(BaseModel):
    dealer_name: str
    confirmed_price: float


# ---------------------------
# Voices / emails / videos
# ---------------------------
class VoiceCreate(BaseModel):
    audio: str = Field(description="base64-encoded audio sample")
    name: str


class VoiceOut(BaseModel):
    name: Optional[str] = None
    voice_id: Optional[str] = None


class EmailParseIn(BaseModel):
    email_content: str = Field(alias="emailContent")

    model_config = ConfigDict(populate_by_name=True)


class EmailParseOut(BaseModel):
    final_price: Optional[float] = None
    tax: Optional[float] = None
    fees: Optional[float] = None


class VideoCreate(BaseModel):
    storage_id: str
    vin: str


class VideoOut(BaseModel):
    id: str
    storage_id: str
    vin: str
    created_at: datetime
