import logging
import re

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_db, get_documents, parse_object_id, serialize_document, utcnow
from errors import Conflict, NotFound, UpstreamError, ValidationError
from identity import IdentityProvider, IdentityProviderError, get_identity_provider
from schemas import Admin, AdminCreate, AdminLink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _email_filter(email: str):
    return {"email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}}


@router.post("", status_code=201)
def add_admin(req: AdminCreate, db: Database = Depends(get_db)):
    if db[Admin.COLLECTION].find_one(_email_filter(req.email)):
        raise Conflict("Admin with this email already exists")
    admin_id = create_document(db, Admin.COLLECTION, Admin(**req.model_dump(), created_at=utcnow()))
    logger.info(f"Admin {req.email} added")
    return {"message": "Admin added", "id": admin_id}


@router.get("")
def list_admins(db: Database = Depends(get_db)):
    return get_documents(db, Admin.COLLECTION, sort=[("created_at", -1)])


@router.get("/search")
def find_by_email(email: str = Query(..., min_length=1), db: Database = Depends(get_db)):
    # existence only, the record itself is never returned here
    return {"exists": db[Admin.COLLECTION].find_one(_email_filter(email), {"_id": 1}) is not None}


@router.patch("/link")
def link_identity(req: AdminLink, db: Database = Depends(get_db)):
    result = db[Admin.COLLECTION].update_one(
        _email_filter(req.email),
        {"$set": {"uid": req.uid, "registered": True, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise NotFound("Admin not found")
    logger.info(f"Admin {req.email} linked to identity {req.uid}")
    return {"message": "Admin linked", "modified_count": result.modified_count}


@router.get("/{admin_id}")
def get_admin(admin_id: str, db: Database = Depends(get_db)):
    admin = db[Admin.COLLECTION].find_one({"_id": parse_object_id(admin_id, "admin id")})
    if not admin:
        raise NotFound("Admin not found")
    return serialize_document(admin)


@router.delete("/{admin_id}")
def delete_admin(admin_id: str, db: Database = Depends(get_db),
                 identity: IdentityProvider = Depends(get_identity_provider)):
    """Delete from the identity provider first, then from the store.

    There is no rollback. If the second phase fails the error body says so
    (``identity_deleted: true``) and the caller can retry the store delete.
    """
    oid = parse_object_id(admin_id, "admin id")
    admin = db[Admin.COLLECTION].find_one({"_id": oid})
    if not admin:
        raise NotFound("Admin not found")
    if not admin.get("uid"):
        raise ValidationError("Admin has no linked identity")

    try:
        identity.delete_user(admin["uid"])
    except IdentityProviderError as e:
        raise UpstreamError(str(e), {"identity_deleted": False, "store_deleted": False})

    try:
        db[Admin.COLLECTION].delete_one({"_id": oid})
    except PyMongoError as e:
        logger.error(f"Admin {admin_id} removed from identity provider but not from store: {e}")
        raise UpstreamError(
            "Identity deleted but admin record could not be removed",
            {"identity_deleted": True, "store_deleted": False},
        )

    logger.info(f"Admin {admin_id} deleted")
    return {"message": "Admin deleted", "identity_deleted": True, "store_deleted": True}
