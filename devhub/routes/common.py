"""
Request helpers shared by the routers.
"""

from __future__ import annotations

import json
from typing import Optional, Type, TypeVar

from fastapi import Query, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from devhub.errors import ValidationError
from devhub.services.common import DEFAULT_PAGE_SIZE, normalize_page
from devhub.storage import ImageUpload

ModelT = TypeVar("ModelT", bound=BaseModel)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


class PageParams:
    """Query paging; out-of-range values are clamped rather than rejected."""

    def __init__(
        self,
        page: int = Query(1),
        page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    ):
        self.page, self.page_size = normalize_page(page, page_size)


def ok(message: str, **payload) -> dict:
    return {"success": True, "message": message, **payload}


def validation_messages(exc: PydanticValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        text = error.get("msg", "Invalid value")
        messages.append(f"{location}: {text}" if location else text)
    return messages


def validate_body(model: Type[ModelT], raw) -> ModelT:
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(errors=validation_messages(exc)) from exc


async def read_image(upload: Optional[UploadFile]) -> Optional[ImageUpload]:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    return ImageUpload(
        data=data,
        filename=upload.filename,
        mime_type=upload.content_type or "application/octet-stream",
    )


async def read_payload(
    request: Request, model: Type[ModelT], image_field: Optional[str] = None
) -> tuple[ModelT, Optional[ImageUpload]]:
    """
    Parse a JSON or multipart body into ``model``. On multipart requests the
    file part named ``image_field`` is returned separately and list fields may
    arrive as JSON-encoded strings or repeated parts.
    """
    content_type = request.headers.get("content-type", "")
    image = None
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        raw: dict = {}
        for key in form.keys():
            values = form.getlist(key)
            if key == image_field and isinstance(values[0], UploadFile):
                image = await read_image(values[0])
                continue
            raw[key] = values if len(values) > 1 else values[0]
    else:
        body = await request.body()
        if not body:
            raw = {}
        else:
            try:
                raw = json.loads(body)
            except ValueError as exc:
                raise ValidationError("Request body must be valid JSON") from exc
    return validate_body(model, raw), image
