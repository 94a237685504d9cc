import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from pymongo.database import Database

from database import create_document, get_db, get_documents, parse_object_id
from errors import NotFound, ValidationError
from notifier import ChangeNotifier, get_notifier
from schemas import Slot, SlotFieldsUpdate, SlotStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots"])


@router.post("/slots", status_code=201)
def add_slot(slot: Slot, background_tasks: BackgroundTasks,
             db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    slot_id = create_document(db, Slot.COLLECTION, slot)
    logger.info(f"Slot {slot.slot_number} added ({slot.vehicle_type})")
    background_tasks.add_task(notifier.notify)
    return {"message": "Slot added", "id": slot_id}


@router.get("/slots")
def list_slots(db: Database = Depends(get_db)):
    return get_documents(db, Slot.COLLECTION, sort=[("slot_number", 1)])


@router.get("/slots/available")
def availability_by_category(db: Database = Depends(get_db)):
    """Count free slots per vehicle type. Types without a free slot are omitted."""
    pipeline = [
        {"$match": {"status": "free"}},
        {"$group": {"_id": "$vehicle_type", "available": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]
    return [
        {"vehicle_type": row["_id"], "available": row["available"]}
        for row in db[Slot.COLLECTION].aggregate(pipeline)
    ]


@router.patch("/slots-status-update/{slot_id}")
def update_slot_status(slot_id: str, update: SlotStatusUpdate, background_tasks: BackgroundTasks,
                       db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    oid = parse_object_id(slot_id, "slot id")
    result = db[Slot.COLLECTION].update_one({"_id": oid}, {"$set": {"status": update.status}})
    if result.matched_count == 0:
        raise NotFound("Slot not found")
    background_tasks.add_task(notifier.notify)
    return {"modified_count": result.modified_count}


@router.patch("/slots-update-slotNumber-vehicleType/{slot_id}")
def update_slot_fields(slot_id: str, update: SlotFieldsUpdate, background_tasks: BackgroundTasks,
                       db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    oid = parse_object_id(slot_id, "slot id")
    fields = update.model_dump(exclude_none=True)
    if not fields:
        raise ValidationError("Provide slot_number or vehicle_type")
    result = db[Slot.COLLECTION].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise NotFound("Slot not found")
    background_tasks.add_task(notifier.notify)
    return {"modified_count": result.modified_count}


@router.delete("/slots/{slot_id}")
def delete_slot(slot_id: str, background_tasks: BackgroundTasks,
                db: Database = Depends(get_db), notifier: ChangeNotifier = Depends(get_notifier)):
    oid = parse_object_id(slot_id, "slot id")
    result = db[Slot.COLLECTION].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound("Slot not found")
    logger.info(f"Slot {slot_id} deleted")
    background_tasks.add_task(notifier.notify)
    return {"message": "Slot deleted"}
