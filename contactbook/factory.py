"""Generic request handlers for CRUD resources.

Each entity exposed through the API describes itself with a
:class:`Resource`; the builders below turn that description into FastAPI
endpoints for listing, reading, creating, updating and deleting records.

Listing understands these query parameters::

    ?type=PERSONAL                  equality filter
    ?createdAt[gte]=2024-01-01      comparison filter (gt, gte, lt, lte)
    ?sort=name,-createdAt           sort, descending on a leading "-"
    ?fields=name,email              only return these fields (and id)
    ?page=2&limit=10                pagination

Field names are the public (camelCase) names declared by the resource;
anything else is rejected with a 400.
"""

import operator
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .database import get_db
from .scoping import get_body_fields, get_conditions

RESERVED_PARAMS = ("page", "sort", "limit", "fields")
OPERATORS = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}
FILTER_PARAM = re.compile(r"^(?P<field>\w+)(?:\[(?P<op>gte|gt|lte|lt)\])?$")
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail="No document found with that ID"
    )


@dataclass(frozen=True)
class Resource:
    """
    Everything the generic handlers need to know about an entity.

    Attributes:
        model: SQLAlchemy model class.
        name: Key of a single record in response payloads.
        plural: Key of a list of records in response payloads.
        out_schema: Schema records are serialized with.
        create_schema: Payload schema for creation.
        update_schema: Payload schema for partial updates.
        fields: Public field name -> model attribute. Only these fields
            can be filtered, sorted, selected or injected.
        id_type: Type of the ``id`` path parameter.
        default_sort: Sort applied when the client gives none.
        detail_schema: Schema used when a relationship is eager-loaded.
        before_persist: Called with the session and the model attributes
            about to be written; raises ``HTTPException`` to reject them.
    """

    model: type
    name: str
    plural: str
    out_schema: type[BaseModel]
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]
    fields: dict[str, str]
    id_type: type = int
    default_sort: str = "-createdAt"
    detail_schema: Optional[type[BaseModel]] = None
    before_persist: Optional[Callable[[Session, dict[str, Any]], None]] = None

    def attribute(self, name: str) -> str:
        try:
            return self.fields[name]
        except KeyError:
            raise bad_request(f"Invalid field: {name}") from None

    def column(self, name: str):
        return getattr(self.model, self.attribute(name))

    def coerce(self, name: str, value: Any) -> Any:
        """Convert a raw (query string) value to the type of a field's column."""
        try:
            python_type = self.column(name).type.python_type
        except NotImplementedError:
            return value
        if isinstance(value, python_type):
            return value
        try:
            if python_type is datetime:
                return datetime.fromisoformat(value)
            if issubclass(python_type, Enum) and isinstance(value, str):
                # enum values are stored upper-case
                return python_type(value.upper())
            return python_type(value)
        except (TypeError, ValueError):
            raise bad_request(f"Invalid value for {name}: {value}") from None

    def to_attributes(self, values: dict[str, Any]) -> dict[str, Any]:
        return {self.attribute(name): value for name, value in values.items()}

    def serialize(self, document, schema=None, include=None) -> dict[str, Any]:
        data = (
            (schema or self.out_schema)
            .model_validate(document)
            .model_dump(mode="json", by_alias=True)
        )
        if include:
            data = {key: value for key, value in data.items() if key in include}
        return data


def split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def positive_int(raw: Optional[str], default: int, name: str) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise bad_request(f"{name} must be a positive integer") from None
    if value < 1:
        raise bad_request(f"{name} must be a positive integer")
    return value


class QueryFeatures:
    """Builds the select statement of a list request step by step."""

    def __init__(self, resource: Resource, query_params):
        self.resource = resource
        self.query_params = query_params
        self.criteria: list = []
        self.order_by: list = []
        self.selected: Optional[set[str]] = None
        self.page = DEFAULT_PAGE
        self.limit = DEFAULT_LIMIT

    def where(self, conditions: dict[str, Any]) -> "QueryFeatures":
        """Add equality conditions on public field names."""
        for name, value in conditions.items():
            self.criteria.append(
                self.resource.column(name) == self.resource.coerce(name, value)
            )
        return self

    def filter(self) -> "QueryFeatures":
        for key, value in self.query_params.multi_items():
            if key in RESERVED_PARAMS:
                continue
            match = FILTER_PARAM.match(key)
            if not match:
                raise bad_request(f"Invalid filter: {key}")
            name = match.group("field")
            compare = OPERATORS.get(match.group("op"), operator.eq)
            self.criteria.append(
                compare(self.resource.column(name), self.resource.coerce(name, value))
            )
        return self

    def sort(self) -> "QueryFeatures":
        spec = self.query_params.get("sort") or self.resource.default_sort
        for name in split_list(spec):
            column = self.resource.column(name.lstrip("-"))
            self.order_by.append(column.desc() if name.startswith("-") else column.asc())
        self.order_by.append(self.resource.column("id").asc())
        return self

    def limit_fields(self) -> "QueryFeatures":
        fields = self.query_params.get("fields")
        if fields:
            names = split_list(fields)
            for name in names:
                self.resource.attribute(name)
            self.selected = {"id", *names}
        return self

    def paginate(self) -> "QueryFeatures":
        self.page = positive_int(self.query_params.get("page"), DEFAULT_PAGE, "page")
        self.limit = positive_int(self.query_params.get("limit"), DEFAULT_LIMIT, "limit")
        return self

    def statement(self):
        return (
            select(self.resource.model)
            .where(*self.criteria)
            .order_by(*self.order_by)
            .offset((self.page - 1) * self.limit)
            .limit(self.limit)
        )

    def count_statement(self):
        return select(func.count()).select_from(self.resource.model).where(*self.criteria)

    def pagination_links(self, total: int) -> dict[str, dict[str, int]]:
        links = {}
        if self.page * self.limit < total:
            links["next"] = {"page": self.page + 1, "limit": self.limit}
        if self.page > 1:
            links["prev"] = {"page": self.page - 1, "limit": self.limit}
        return links


def scoped_statement(resource: Resource, request: Request, id: Any):
    """Select one record by id, within the conditions set for the request."""
    features = QueryFeatures(resource, request.query_params)
    features.where(get_conditions(request)).where({"id": id})
    return select(resource.model).where(*features.criteria)


def payload_attributes(
    resource: Resource, request: Request, values: dict[str, Any]
) -> dict[str, Any]:
    """Fill payload gaps from the request's body fields and map to attributes."""
    for name, value in get_body_fields(request).items():
        if not values.get(name):
            values[name] = resource.coerce(name, value)
    return resource.to_attributes(values)


def commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Duplicate field value. Please use another value!",
        ) from None


def get_all(resource: Resource):
    """Build the list endpoint of a resource."""

    def handler(request: Request, db: Session = Depends(get_db)):
        features = (
            QueryFeatures(resource, request.query_params)
            .where(get_conditions(request))
            .filter()
            .sort()
            .limit_fields()
            .paginate()
        )
        documents = db.scalars(features.statement()).all()
        total = db.scalar(features.count_statement())
        return {
            "status": "success",
            "results": len(documents),
            "pagination": features.pagination_links(total),
            "data": {
                resource.plural: [
                    resource.serialize(document, include=features.selected)
                    for document in documents
                ]
            },
        }

    handler.__name__ = f"get_all_{resource.plural}"
    return handler


def get_one(resource: Resource, populate: Optional[str] = None):
    """Build the read endpoint of a resource.

    ``populate`` names a relationship to eager-load; the record is then
    serialized with the resource's detail schema.
    """
    id_type = resource.id_type
    schema = resource.detail_schema if populate else None

    def handler(id: id_type, request: Request, db: Session = Depends(get_db)):
        stmt = scoped_statement(resource, request, id)
        if populate:
            stmt = stmt.options(selectinload(getattr(resource.model, populate)))
        document = db.scalars(stmt).first()
        if document is None:
            raise not_found()
        return {
            "status": "success",
            "data": {resource.name: resource.serialize(document, schema)},
        }

    handler.__name__ = f"get_{resource.name}"
    return handler


def create_one(resource: Resource):
    """Build the create endpoint of a resource."""
    create_schema = resource.create_schema

    def handler(payload: create_schema, request: Request, db: Session = Depends(get_db)):
        attributes = payload_attributes(
            resource, request, payload.model_dump(by_alias=True)
        )
        if resource.before_persist:
            resource.before_persist(db, attributes)

        document = resource.model(**attributes)
        db.add(document)
        commit(db)
        db.refresh(document)
        if document.id is None:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error occured while creating a document. Please, try again.",
            )
        return {
            "status": "success",
            "data": {resource.name: resource.serialize(document)},
        }

    handler.__name__ = f"create_{resource.name}"
    return handler


def update_one(resource: Resource):
    """Build the partial update endpoint of a resource."""
    id_type = resource.id_type
    update_schema = resource.update_schema

    def handler(
        id: id_type,
        payload: update_schema,
        request: Request,
        db: Session = Depends(get_db),
    ):
        document = db.scalars(scoped_statement(resource, request, id)).first()
        if document is None:
            raise not_found()

        attributes = payload_attributes(
            resource, request, payload.model_dump(by_alias=True, exclude_unset=True)
        )
        if resource.before_persist:
            resource.before_persist(db, attributes)

        for key, value in attributes.items():
            setattr(document, key, value)
        commit(db)
        db.refresh(document)
        return {
            "status": "success",
            "data": {resource.name: resource.serialize(document)},
        }

    handler.__name__ = f"update_{resource.name}"
    return handler


def delete_one(resource: Resource):
    """Build the delete endpoint of a resource."""
    id_type = resource.id_type

    def handler(id: id_type, request: Request, db: Session = Depends(get_db)):
        document = db.scalars(scoped_statement(resource, request, id)).first()
        if document is None:
            raise not_found()
        db.delete(document)
        commit(db)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    handler.__name__ = f"delete_{resource.name}"
    return handler
