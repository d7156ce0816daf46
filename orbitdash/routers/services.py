"""
Services Router

Handles the service bookmark catalog:
- List services (grouped by category)
- Create / update from JSON or multipart form (with icon upload)
- Delete a service and its icon
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from starlette.datastructures import FormData, UploadFile

from ..common.exceptions import IconError, NotFoundError, StorageError, ValidationError
from ..context import AppContext
from ..services.registry import ServiceCreate, ServiceRecord, ServiceUpdate, UploadedIcon
from .deps import get_context

router = APIRouter()


class DeleteResponse(BaseModel):
    success: bool


# ============================================
# HELPER FUNCTIONS
# ============================================

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def is_form(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return content_type.startswith(FORM_CONTENT_TYPES)


async def parse_json(request: Request, model: type[BaseModel]) -> BaseModel:
    """Parse a JSON body into a schema, 400 on bad input."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    try:
        return model.model_validate(payload)
    except SchemaError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid request: {e.errors()[0]['msg']}",
        )


def form_text(form: FormData, key: str) -> Optional[str]:
    value = form.get(key)
    if value is None or isinstance(value, UploadFile):
        return None
    return str(value)


async def form_icon(form: FormData) -> Optional[UploadedIcon]:
    """Uploaded icon_file, ignoring empty uploads."""
    upload = form.get("icon_file")
    if not isinstance(upload, UploadFile):
        return None
    data = await upload.read()
    if not data:
        return None
    return UploadedIcon(data=data, filename=upload.filename)


def create_from_form(form: FormData) -> ServiceCreate:
    return ServiceCreate(
        name=form_text(form, "name"),
        url=form_text(form, "url"),
        description=form_text(form, "description") or None,
        category=form_text(form, "category") or None,
        open_in_new_tab=form_text(form, "open_in_new_tab") != "false",
        icon_url=(form_text(form, "icon_url") or "").strip() or None,
    )


def update_from_form(form: FormData) -> ServiceUpdate:
    """Only keys present in the form become part of the update."""
    fields = {}
    for key in ("name", "url"):
        value = form_text(form, key)
        if value is not None:
            fields[key] = value
    for key in ("description", "category"):
        value = form_text(form, key)
        if value is not None:
            fields[key] = value or None
    new_tab = form_text(form, "open_in_new_tab")
    if new_tab is not None:
        fields["open_in_new_tab"] = new_tab != "false"
    icon_url = (form_text(form, "icon_url") or "").strip()
    if icon_url:
        fields["icon_url"] = icon_url
    if form_text(form, "remove_icon") == "true":
        fields["remove_icon"] = True
    return ServiceUpdate(**fields)


# ============================================
# ENDPOINTS
# ============================================

@router.get("", response_model=list[ServiceRecord])
def list_services(ctx: AppContext = Depends(get_context)):
    """
    List all services, ordered by category then name.

    Services without a category come last.
    """
    return ctx.registry.list()


@router.post("", response_model=ServiceRecord, status_code=status.HTTP_201_CREATED)
async def create_service(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Create a service.

    Accepts JSON (with optional icon_url) or multipart form data
    (with optional icon_file / icon_url).
    """
    icon = None
    if is_form(request):
        form = await request.form()
        data = create_from_form(form)
        icon = await form_icon(form)
    else:
        data = await parse_json(request, ServiceCreate)

    try:
        return await ctx.registry.create(data, icon)
    except (ValidationError, IconError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@router.put("/{service_id}", response_model=ServiceRecord)
async def update_service(
    service_id: str,
    request: Request,
    ctx: AppContext = Depends(get_context),
):
    """
    Partially update a service.

    Icon precedence: new upload or icon_url, then remove_icon.
    """
    icon = None
    if is_form(request):
        form = await request.form()
        data = update_from_form(form)
        icon = await form_icon(form)
    else:
        data = await parse_json(request, ServiceUpdate)

    try:
        return await ctx.registry.update(service_id, data, icon)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except (ValidationError, IconError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@router.delete("/{service_id}", response_model=DeleteResponse)
def delete_service(service_id: str, ctx: AppContext = Depends(get_context)):
    """Delete a service and its icon file."""
    try:
        ctx.registry.delete(service_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return {"success": True}
