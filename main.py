import base64
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from database import EventStore, get_store
from schemas import BeaconQuery, ResetResponse, build_event_record, timestamp_now

logger = logging.getLogger(__name__)

# 1x1 transparent PNG
PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Access-Control-Allow-Origin": "*",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    store.initialize()
    logger.info("Event store ready: %s, audit log %s", store.data_path, store.log_path)
    yield


app = FastAPI(title="Beacon Tracker Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Utilities --------------------

def request_ip_ua(req: Request) -> Dict[str, Optional[str]]:
    # Try headers first (supports proxies), then client host
    xff = req.headers.get("x-forwarded-for")
    ip = (xff.split(",")[0].strip() if xff else None) or (req.client.host if req.client else None)
    return {
        "ip": ip,
        "user_agent": req.headers.get("user-agent"),
        "referrer": req.headers.get("referer"),
    }


def pixel_response(status_code: int = 200) -> Response:
    return Response(content=PIXEL_PNG, status_code=status_code, media_type="image/png", headers=PIXEL_HEADERS)


# -------------------- HTTP Endpoints --------------------

@app.get("/")
def read_root():
    return {"message": "Beacon Tracker Backend Running"}


@app.get("/save")
def save(request: Request, beacon: BeaconQuery = Depends(), store: EventStore = Depends(get_store)):
    """Record one beacon. The response is the same pixel whether or not a location was sent."""
    meta = request_ip_ua(request)
    record = build_event_record(
        beacon,
        source_address=meta["ip"],
        user_agent=meta["user_agent"],
        referrer=meta["referrer"],
    )
    try:
        record = store.append(record)
    except OSError:
        logger.exception("Failed to persist beacon from %s", record.source_address)
        return pixel_response(status_code=500)

    logger.info(
        "tracked time=%s ip=%s location=%s, %s status=%s",
        record.received_at, record.source_address, record.latitude, record.longitude, record.status,
    )
    return pixel_response()


@app.get("/get-data")
def get_data(store: EventStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return store.read_all()


@app.get("/clear-data", response_model=ResetResponse)
def clear_data(store: EventStore = Depends(get_store)):
    try:
        store.reset_all()
    except OSError as e:
        logger.exception("Failed to clear event store")
        raise HTTPException(status_code=500, detail=f"Failed to clear data: {e}")

    logger.info("Event store cleared")
    return ResetResponse(success=True, message="All data cleared", timestamp=timestamp_now())


# -------------------- Diagnostics --------------------

@app.get("/test")
def diagnostics(store: EventStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "data_file": store.data_path,
        "log_file": store.log_path,
        "data_file_exists": os.path.exists(store.data_path),
        "log_file_exists": os.path.exists(store.log_path),
        "events": store.stats(),
    }
    return response


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)
