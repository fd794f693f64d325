from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

# --- Load env before importing models/engine ---
from common.config_loader import load_env_files

load_env_files()

# --- Project imports ---
from common.carfax import CarfaxError
from common.elevenlabs import ElevenLabsError, verify_webhook_signature
from common.extraction import ExtractionError
from common.logging_config import configure_logging
from common.settings import get_settings
from db.models import init_db, engine
from db.session import ping as db_ping
from services import (
    call_service,
    listing_service,
    payment_service,
    quote_service,
    video_service,
    voice_service,
    webhook_service,
)
from services.call_service import PaymentVerificationError
from services.quote_service import QuoteValidationError
from api.utils import (
    CallOut,
    CallRequest,
    CallStatusUpdate,
    DealOut,
    EmailParseIn,
    EmailParseOut,
    ExistingCallOut,
    ListingOut,
    ListingSearch,
    MerchantAddressOut,
    PaymentVerifyIn,
    PaymentVerifyOut,
    VideoCreate,
    VideoOut,
    VoiceCreate,
    VoiceOut,
)

configure_logging()
logger = logging.getLogger("carmommy")

NO_OFFERS = "no offers available"


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_settings().log_summary()
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    lifespan=lifespan,
    title="CarMommy API",
    version="0.3.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _json_body(request: Request) -> dict:
    """
    Parse the relay's JSON body by hand so odd content types still get through.
    Non-object JSON reads as an empty object; unparseable bodies raise ValueError.
    """
    body = json.loads(await request.body() or b"{}")
    return body if isinstance(body, dict) else {}


def _relay_error(error: str, e: Exception) -> JSONResponse:
    return JSONResponse({"error": error, "details": str(e)}, status_code=500)


def _fmt_price(p: float) -> str:
    return str(int(p)) if float(p).is_integer() else f"{p:.2f}"


@app.get("/")
async def read_root():
    return {"message": "CarMommy API is running", "database": await db_ping()}


# ---------------------------
# Listings
# ---------------------------
@app.post("/listings/search", response_model=List[ListingOut])
async def search_listings(body: ListingSearch):
    try:
        return await listing_service.search_listings(
            body.zip_code, body.make, body.model, body.radius_miles
        )
    except CarfaxError as e:
        raise HTTPException(502, str(e)) from e


# ---------------------------
# Payments
# ---------------------------
@app.get("/payments/merchant-address", response_model=MerchantAddressOut)
async def merchant_address():
    return MerchantAddressOut(merchant_address=payment_service.get_merchant_address())


@app.post("/payments/verify", response_model=PaymentVerifyOut, response_model_exclude_none=True)
async def verify_payment(body: PaymentVerifyIn):
    return await payment_service.verify_payment(body.signature, body.merchant_address)


# ---------------------------
# Calls
# ---------------------------
@app.post("/calls", status_code=201)
async def request_call(body: CallRequest):
    """Verify the payment and ask the voice agent to call the dealer. Returns the vendor payload."""
    try:
        return await call_service.request_call(**body.model_dump(by_alias=False))
    except PaymentVerificationError as e:
        raise HTTPException(402, str(e)) from e
    except ElevenLabsError as e:
        raise HTTPException(502, str(e)) from e


@app.get("/calls/by-vin/{vin}", response_model=Optional[ExistingCallOut], response_model_exclude_none=True)
async def check_existing_call(vin: str):
    return await call_service.check_existing_call(vin)


@app.get("/calls/{conversation_id}", response_model=CallOut)
async def get_call(conversation_id: str):
    c = await call_service.get_call(conversation_id)
    if not c:
        raise HTTPException(404, "Call not found")
    return CallOut(**c)


@app.post("/calls/{conversation_id}/status", status_code=204)
async def update_call_status(conversation_id: str, body: CallStatusUpdate):
    await call_service.update_call_status(
        conversation_id,
        body.status,
        **body.model_dump(exclude={"status"}, exclude_unset=True),
    )
    return Response(status_code=204)


@app.get("/deals", response_model=List[DealOut])
async def competitive_deals(
    make: str = Query(..., min_length=1),
    model: str = Query(..., min_length=1),
):
    return await call_service.get_competitive_deals(make, model)


# ---------------------------
# Vendor / relay webhooks
# ---------------------------
@app.post("/elevenlabs/post-call")
async def elevenlabs_post_call(request: Request):
    raw = await request.body()

    secret = get_settings().elevenlabs_webhook_secret
    if secret and not verify_webhook_signature(raw, request.headers.get("ElevenLabs-Signature"), secret):
        logger.warning("Rejected post-call webhook with a bad signature")
        return PlainTextResponse("Invalid signature", status_code=401)

    try:
        payload = json.loads(raw)
        await webhook_service.handle_event(payload if isinstance(payload, dict) else {})
    except Exception:
        logger.exception("Error processing webhook")
        return PlainTextResponse("Internal server error", status_code=500)
    return PlainTextResponse("Webhook processed successfully", status_code=200)


@app.post("/quotes")
async def quotes(request: Request):
    try:
        body = await _json_body(request)
        final_price, vin = body.get("finalPrice"), body.get("vin")
        logger.info("Received quote: vin=%s finalPrice=%s", vin, final_price)
        await quote_service.ingest_quote(vin, final_price)
    except QuoteValidationError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception("Error updating quote")
        return _relay_error("Failed to update quote", e)
    return {
        "success": True,
        "message": "Quote updated successfully",
        "vin": vin,
        "finalPrice": final_price,
    }


@app.post("/elevenlabs/get-competitive-deals", response_class=PlainTextResponse)
async def elevenlabs_competitive_deals(request: Request):
    try:
        body = await _json_body(request)
        make, model = body.get("make"), body.get("model")
        if not make or not model:
            return JSONResponse(
                {"error": "Missing required parameters: make and model are required"},
                status_code=400,
            )
        deals = await call_service.get_competitive_deals(str(make), str(model))
    except Exception as e:
        logger.exception("Error fetching competitive deals")
        return _relay_error("Failed to fetch competitive deals", e)

    logger.info("Returning %d competitive deals for %s %s", len(deals), make, model)
    if not deals:
        return NO_OFFERS
    return ", ".join(f"{d['dealer_name']}: {_fmt_price(d['confirmed_price'])}" for d in deals)


# ---------------------------
# Voices
# ---------------------------
@app.post("/voices", status_code=201)
async def create_voice(body: VoiceCreate):
    try:
        return await voice_service.create_voice(body.audio, body.name)
    except ValueError as e:
        raise HTTPException(400, str(e)) from e
    except ElevenLabsError as e:
        raise HTTPException(502, str(e)) from e


@app.get("/voices", response_model=List[VoiceOut])
async def list_voices():
    try:
        return await voice_service.get_voices()
    except ElevenLabsError as e:
        raise HTTPException(502, str(e)) from e


# ---------------------------
# Emails
# ---------------------------
@app.post("/emails/parse", response_model=EmailParseOut)
async def parse_email(body: EmailParseIn):
    try:
        return await quote_service.parse_email(body.email_content)
    except QuoteValidationError as e:
        raise HTTPException(400, str(e)) from e
    except ExtractionError as e:
        raise HTTPException(502, str(e)) from e


# ---------------------------
# Videos
# ---------------------------
@app.post("/videos", response_model=VideoOut, status_code=201)
async def save_video(body: VideoCreate):
    try:
        return await video_service.save_video(storage_id=body.storage_id, vin=body.vin)
    except ValueError as e:
        raise HTTPException(400, str(e)) from e


@app.get("/videos/{vin}", response_model=VideoOut)
async def get_video(vin: str):
    v = await video_service.get_video(vin)
    if not v:
        raise HTTPException(404, "Video not found")
    return v


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="127.0.0.1", port=8000, reload=True)
