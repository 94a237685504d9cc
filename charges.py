import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import create_document, get_db, get_documents, parse_object_id
from errors import NotFound, ValidationError
from schemas import ChargeRule, ChargeRuleUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["charges"])


def rate_for_category(db: Database, vehicle_type: str) -> float:
    rule = db[ChargeRule.COLLECTION].find_one({"vehicle_type": vehicle_type})
    if not rule:
        raise NotFound(f"No charge rule for vehicle type '{vehicle_type}'")
    return float(rule["charge"])


@router.post("/charge-control", status_code=201)
def add_charge_rule(rule: ChargeRule, db: Database = Depends(get_db)):
    rule_id = create_document(db, ChargeRule.COLLECTION, rule)
    logger.info(f"Charge rule added: {rule.vehicle_type} at {rule.charge}/min")
    return {"message": "Charge rule added", "id": rule_id}


@router.get("/charge-control")
def list_charge_rules(db: Database = Depends(get_db)):
    return get_documents(db, ChargeRule.COLLECTION, sort=[("vehicle_type", 1)])


@router.get("/charge-control/rate/{vehicle_type}")
def get_rate(vehicle_type: str, db: Database = Depends(get_db)):
    return {"charge": rate_for_category(db, vehicle_type)}


@router.patch("/charge-control/{rule_id}")
def update_charge_rule(rule_id: str, update: ChargeRuleUpdate, db: Database = Depends(get_db)):
    oid = parse_object_id(rule_id, "charge rule id")
    fields = update.model_dump(exclude_none=True)
    if not fields:
        raise ValidationError("Provide vehicle_type or charge")
    result = db[ChargeRule.COLLECTION].update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise NotFound("Charge rule not found")
    return {"modified_count": result.modified_count}


@router.delete("/charge-control/{rule_id}")
def delete_charge_rule(rule_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(rule_id, "charge rule id")
    result = db[ChargeRule.COLLECTION].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound("Charge rule not found")
    return {"message": "Charge rule deleted"}


@router.get("/vehicle-types")
def list_vehicle_types(db: Database = Depends(get_db)):
    return sorted(db[ChargeRule.COLLECTION].distinct("vehicle_type"))
