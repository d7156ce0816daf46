"""FastAPI dependencies"""

from fastapi import Request

from ..context import AppContext


def get_context(request: Request) -> AppContext:
    """
    Dependency returning the process-wide AppContext.

    Usage:
        @router.get("/")
        async def my_route(ctx: AppContext = Depends(get_context)):
            ...
    """
    return request.app.state.context
