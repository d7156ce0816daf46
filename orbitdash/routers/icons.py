"""
Icons Router

Serves stored icon files by bare filename.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from ..context import AppContext
from ..services.registry.icons import media_type_for
from .deps import get_context

router = APIRouter()

ICON_CACHE_CONTROL = "public, max-age=3600"


@router.get("/{filename}")
def get_icon(filename: str, ctx: AppContext = Depends(get_context)):
    """Return icon bytes; the name is reduced to its basename first."""
    path = ctx.icons.resolve(filename)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")

    return FileResponse(
        path,
        media_type=media_type_for(path.name),
        headers={"Cache-Control": ICON_CACHE_CONTROL},
    )
