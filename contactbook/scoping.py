"""Request scoping dependencies.

These run ahead of the generic handlers in :mod:`contactbook.factory` and
narrow what a request may touch:

* ``request.state.conditions`` holds the search conditions every read,
  update and delete is restricted by;
* ``request.state.body_fields`` holds values written into create and
  update payloads when the client did not supply them.

Keys are public field names (``user``, not ``user_id``).
"""

from typing import Any, Callable

from fastapi import Depends, Request

from .auth import get_current_user
from .models import User


def get_conditions(request: Request) -> dict[str, Any]:
    """Search conditions set for this request."""
    return getattr(request.state, "conditions", None) or {}


def get_body_fields(request: Request) -> dict[str, Any]:
    """Payload defaults set for this request."""
    fields = getattr(request.state, "body_fields", None)
    if fields is None:
        fields = {}
        request.state.body_fields = fields
    return fields


def key_from_param(param: str) -> str:
    """Field name a path parameter refers to: ``userId`` -> ``user``."""
    return param[: -len("Id")] if param.endswith("Id") and param != "Id" else param


def set_user_body_field(
    request: Request, current_user: User = Depends(get_current_user)
) -> None:
    """Make the current user the owner of created records."""
    get_body_fields(request).setdefault("user", current_user.id)


def set_search_condition_to_user(
    request: Request, current_user: User = Depends(get_current_user)
) -> None:
    """Restrict the request to records owned by the current user."""
    request.state.conditions = {"user": current_user.id}


def set_search_condition_from_param(param: str) -> Callable[[Request], None]:
    """
    Build a dependency restricting the request by a path parameter.

    Args:
        param (str): Path parameter name, e.g. ``userId``.

    Returns:
        Callable: FastAPI dependency.
    """

    def dependency(request: Request) -> None:
        value = request.path_params.get(param)
        request.state.conditions = {key_from_param(param): value} if value else {}

    return dependency


def set_body_field_from_param(*params: str) -> Callable[[Request], None]:
    """
    Build a dependency copying path parameters into the payload.

    Values the client already sent are kept.

    Args:
        *params (str): Path parameter names, e.g. ``userId``.

    Returns:
        Callable: FastAPI dependency.
    """

    def dependency(request: Request) -> None:
        fields = get_body_fields(request)
        for param in params:
            value = request.path_params.get(param)
            if value:
                fields.setdefault(key_from_param(param), value)

    return dependency
