import logging
import os

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import admins
import charges
import parking
import qr
import slots
from database import db as configured_db
from errors import ApiError, UpstreamError
from notifier import ChangeNotifier
from schemas import Admin, ChargeRule, ParkingSession, Slot

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

app = FastAPI(title="Smart Parking API")
app.state.notifier = ChangeNotifier()

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(slots.router)
app.include_router(parking.router)
app.include_router(admins.router)
app.include_router(charges.router)
app.include_router(qr.router)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    body = exc.body() if isinstance(exc, ApiError) else {"message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    error = UpstreamError(f"Database error: {exc}")
    return JSONResponse(status_code=error.status_code, content=error.body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        loc = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{loc}: {errors[0].get('msg')}" if loc else errors[0].get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.get("/")
def read_root():
    return {"message": "Smart Parking API is running"}


@app.websocket("/ws")
async def updates(websocket: WebSocket):
    notifier: ChangeNotifier = websocket.app.state.notifier
    await notifier.connect(websocket)
    try:
        while True:
            # clients never send anything meaningful; this just waits for the close
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        notifier.disconnect(websocket)


COLLECTIONS = (Slot.COLLECTION, ParkingSession.COLLECTION, Admin.COLLECTION, ChargeRule.COLLECTION)


@app.get("/test")
def test_database():
    """Store diagnostics: reachability plus a document count per collection."""
    if configured_db is None:
        return {"backend": "running", "database": "not configured", "collections": {}}
    try:
        counts = {name: configured_db[name].estimated_document_count() for name in COLLECTIONS}
    except PyMongoError as e:
        logger.warning(f"Store diagnostics failed: {e}")
        return {"backend": "running", "database": f"unreachable: {str(e)[:80]}", "collections": {}}
    return {"backend": "running", "database": "connected", "collections": counts}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
