"""
Entity Dispatch Endpoint.

A catch-all route handing every request to the ``RequestRouter``. The router
and the persistence engines are synchronous, so the dispatch runs in the
thread pool to keep the event loop free.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from metacrud.server.core.constant import ROUTED_METHODS
from metacrud.server.routing.controller import ApiResponse
from metacrud.server.routing.router import normalize_query
from metacrud.server.services.deps import RequestContextDep

router = APIRouter()

NO_BODY_STATUSES = (204, 304)


def render(result: ApiResponse) -> Response:
    """Turn a router response into a Starlette response."""
    if result.body is None or result.status_code in NO_BODY_STATUSES:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(content=result.body, status_code=result.status_code, headers=result.headers)


@router.api_route("/{path:path}", methods=ROUTED_METHODS, include_in_schema=False)
async def dispatch(path: str, request: Request, context: RequestContextDep) -> Response:
    """
    Dispatch a request to the controller of the first matching route.

    Args:
        path: Request path below the API prefix
        request: The incoming request
        context: Session, registry, storage and settings of the request
    """
    body = await request.body()
    query = normalize_query(request.query_params.multi_items())
    result = await run_in_threadpool(
        request.app.state.router.dispatch, context, request.method, f"/{path}", query, body
    )
    return render(result)
