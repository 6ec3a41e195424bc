"""Contact management routes for the Contacts API.

Every route requires authentication and only ever sees the contacts of
the current user.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from . import crud, factory, models, schemas
from .auth import get_current_user
from .scoping import set_search_condition_to_user, set_user_body_field


def ensure_owner_exists(db: Session, attributes: dict[str, Any]) -> None:
    """
    Reject contacts whose owner is not an existing user.

    Args:
        db (Session): Database session.
        attributes (dict): Model attributes about to be written.

    Raises:
        HTTPException: If the referenced user does not exist.
    """
    if "user_id" not in attributes:
        return
    owner_id = attributes["user_id"]
    if owner_id is None or crud.get_user_by_id(db, owner_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with supplied id does not exist",
        )


CONTACTS = factory.Resource(
    model=models.Contact,
    name="contact",
    plural="contacts",
    out_schema=schemas.ContactOut,
    create_schema=schemas.ContactCreate,
    update_schema=schemas.ContactUpdate,
    detail_schema=schemas.ContactDetailOut,
    fields={
        "id": "id",
        "name": "name",
        "email": "email",
        "phone": "phone",
        "type": "type",
        "user": "user_id",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    before_persist=ensure_owner_exists,
)

router = APIRouter(
    prefix="/api/v1/contacts",
    tags=["contacts"],
    dependencies=[Depends(get_current_user)],
)

owned = [Depends(set_search_condition_to_user)]

router.add_api_route(
    "",
    factory.get_all(CONTACTS),
    methods=["GET"],
    dependencies=owned,
    summary="Get all contacts",
)
router.add_api_route(
    "",
    factory.create_one(CONTACTS),
    methods=["POST"],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(set_user_body_field)],
    summary="Create new contact",
)
router.add_api_route(
    "/{id}",
    factory.get_one(CONTACTS, populate="owner"),
    methods=["GET"],
    dependencies=owned,
    summary="Get one contact",
)
router.add_api_route(
    "/{id}",
    factory.update_one(CONTACTS),
    methods=["PATCH"],
    dependencies=owned,
    summary="Update contact",
)
router.add_api_route(
    "/{id}",
    factory.delete_one(CONTACTS),
    methods=["DELETE"],
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=owned,
    summary="Delete contact",
)
