"""
Parking session lifecycle.

A session moves initial -> parked -> paid -> completed. A paid session that
reaches the exit gate after the grace window drops to ``repay`` and must pay
again; a booking that never makes it through the entrance ends in
``entrance_error``.

The transition endpoints check the current status before writing. The plain
``PATCH /parking/{id}`` merge-patch does not: gate and kiosk clients that use
it are trusted to follow the lifecycle above.
"""
import logging
import math
import os
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from pymongo.database import Database

from charges import rate_for_category
from database import as_utc, create_document, get_db, get_documents, parse_object_id, utcnow
from errors import Conflict, NotFound, ValidationError
from notifier import ChangeNotifier, get_notifier
from schemas import (
    CURRENT_STATUSES,
    HISTORY_STATUSES,
    BookingRequest,
    ParkingSession,
    ParkRequest,
    PaymentRequest,
)

logger = logging.getLogger(__name__)

PAYMENT_GRACE_MINUTES = int(os.getenv("PAYMENT_GRACE_MINUTES", "15"))

TIMESTAMP_FIELDS = ("booking_time", "entry_time", "exit_time", "paid_time")

router = APIRouter(prefix="/parking", tags=["parking"])


def _sessions(db: Database):
    return db[ParkingSession.COLLECTION]


def _paid_amount(session: Dict[str, Any]) -> float:
    paid = session.get("paid")
    if paid is None:
        return 0.0
    if isinstance(paid, bool) or not isinstance(paid, (int, float)):
        raise Conflict(f"Parking session has a non-numeric paid amount: {paid!r}")
    return float(paid)


def _coerce_patch(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Store patched timestamps as dates and reject a non-numeric ``paid``."""
    coerced = dict(fields)
    for key in TIMESTAMP_FIELDS:
        if coerced.get(key) is not None:
            coerced[key] = as_utc(coerced[key], key)
    paid = coerced.get("paid")
    if paid is not None and (isinstance(paid, bool) or not isinstance(paid, (int, float))):
        raise ValidationError("paid must be a number")
    return coerced


def _require_uid(uid: Optional[str]) -> str:
    if not uid:
        raise ValidationError("uid is required")
    return uid


def _transition(db: Database, session_id: str, allowed: Iterable[str], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``changes`` only if the session is currently in one of ``allowed``."""
    oid = parse_object_id(session_id, "parking id")
    allowed = list(allowed)
    result = _sessions(db).update_one({"_id": oid, "status": {"$in": allowed}}, {"$set": changes})
    if result.matched_count == 0:
        session = _sessions(db).find_one({"_id": oid}, {"status": 1})
        if not session:
            raise NotFound("Parking session not found")
        raise Conflict(f"Parking session is '{session.get('status')}', expected one of {allowed}")
    logger.info(f"Parking session {session_id} -> {changes.get('status')}")
    return {"id": session_id, "status": changes.get("status")}


@router.post("/book", status_code=201)
def book(req: BookingRequest, background_tasks: BackgroundTasks,
         db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    session = ParkingSession(**req.model_dump(), booking_time=utcnow())
    session_id = create_document(db, ParkingSession.COLLECTION, session)
    logger.info(f"Parking booked for user {req.uid}")
    background_tasks.add_task(notifier.notify)
    return {"message": "Parking booked", "id": session_id}


@router.get("/user-current-parking")
def current_for_user(uid: Optional[str] = Query(None), db: Database = Depends(get_db)):
    return get_documents(
        db,
        ParkingSession.COLLECTION,
        {"uid": _require_uid(uid), "status": {"$in": list(CURRENT_STATUSES)}},
        sort=[("booking_time", -1)],
    )


@router.get("/user-history")
def history_for_user(uid: Optional[str] = Query(None), db: Database = Depends(get_db)):
    return get_documents(
        db,
        ParkingSession.COLLECTION,
        {"uid": _require_uid(uid), "status": {"$in": list(HISTORY_STATUSES)}},
        sort=[("booking_time", -1)],
    )


@router.get("")
def list_all(db: Database = Depends(get_db)):
    # null entry_time sorts below any date, so bookings not yet entered come last
    return get_documents(db, ParkingSession.COLLECTION, sort=[("entry_time", -1), ("booking_time", -1)])


@router.get("/times")
def times_for(parking_id: Optional[str] = Query(None, alias="parkingId"),
              user_id: Optional[str] = Query(None, alias="userId"),
              db: Database = Depends(get_db)):
    query: Dict[str, Any] = {}
    if parking_id:
        query["_id"] = parse_object_id(parking_id, "parking id")
    if user_id:
        query["uid"] = user_id
    return get_documents(db, ParkingSession.COLLECTION, query, projection={"entry_time": 1, "exit_time": 1})


@router.patch("/{session_id}")
def patch_session(session_id: str, background_tasks: BackgroundTasks,
                  fields: Dict[str, Any] = Body(...),
                  db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    oid = parse_object_id(session_id, "parking id")
    fields = {k: v for k, v in fields.items() if k not in ("_id", "id")}
    if not fields:
        raise ValidationError("No fields to update")
    result = _sessions(db).update_one({"_id": oid}, {"$set": _coerce_patch(fields)})
    if result.matched_count == 0:
        raise NotFound("Parking session not found")
    background_tasks.add_task(notifier.notify)
    return {"modified_count": result.modified_count}


@router.post("/{session_id}/park")
def mark_parked(session_id: str, req: ParkRequest, background_tasks: BackgroundTasks,
                db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    result = _transition(db, session_id, ["initial"], {
        "status": "parked",
        "slot_number": req.slot_number,
        "entry_time": utcnow(),
    })
    background_tasks.add_task(notifier.notify)
    return result


@router.post("/{session_id}/error")
def mark_error(session_id: str, background_tasks: BackgroundTasks,
               db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    result = _transition(db, session_id, ["initial"], {"status": "entrance_error"})
    background_tasks.add_task(notifier.notify)
    return result


@router.post("/{session_id}/pay")
def record_payment(session_id: str, req: PaymentRequest, background_tasks: BackgroundTasks,
                   db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    oid = parse_object_id(session_id, "parking id")
    session = _sessions(db).find_one({"_id": oid})
    if not session:
        raise NotFound("Parking session not found")
    total_paid = round(_paid_amount(session) + req.amount, 2)
    result = _transition(db, session_id, ["parked", "repay"], {
        "status": "paid",
        "paid": total_paid,
        "paid_time": utcnow(),
    })
    background_tasks.add_task(notifier.notify)
    return {**result, "paid": total_paid}


@router.post("/{session_id}/exit")
def mark_exit(session_id: str, background_tasks: BackgroundTasks,
              db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    """Exit gate scan. Completes the session, or asks for repayment if the
    grace window since the last payment has run out."""
    oid = parse_object_id(session_id, "parking id")
    session = _sessions(db).find_one({"_id": oid})
    if not session:
        raise NotFound("Parking session not found")
    now = utcnow()
    paid_time = as_utc(session.get("paid_time"))
    if paid_time is not None and now - paid_time > timedelta(minutes=PAYMENT_GRACE_MINUTES):
        changes = {"status": "repay"}
    else:
        changes = {"status": "completed", "exit_time": now}
    result = _transition(db, session_id, ["paid"], changes)
    background_tasks.add_task(notifier.notify)
    return result


@router.post("/{session_id}/complete")
def complete(session_id: str, background_tasks: BackgroundTasks,
             db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    result = _transition(db, session_id, ["paid"], {"status": "completed", "exit_time": utcnow()})
    background_tasks.add_task(notifier.notify)
    return result


@router.get("/{session_id}/charge")
def quote(session_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(session_id, "parking id")
    session = _sessions(db).find_one({"_id": oid})
    if not session:
        raise NotFound("Parking session not found")
    entry_time = as_utc(session.get("entry_time"))
    if entry_time is None:
        raise Conflict("Vehicle has not entered yet")
    rate = rate_for_category(db, session.get("vehicle_type"))

    end = as_utc(session.get("exit_time")) or utcnow()
    minutes = max(math.ceil((end - entry_time).total_seconds() / 60.0), 0)
    total = round(minutes * rate, 2)
    paid = _paid_amount(session)
    return {
        "minutes": minutes,
        "rate": rate,
        "total": total,
        "paid": paid,
        "due": round(max(total - paid, 0), 2),
    }
