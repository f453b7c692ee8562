"""FastAPI route definitions for the short link REST API.

This module provides all HTTP endpoints with dependency injection, error
mapping and response serialization on top of LinkService.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/shorten
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 422/500

    GET    /api/stats/:short_code
        └─ LinkStats (200) or 404

    GET    /api/links
        └─ list[LinkResponse] (200), newest first

    DELETE /api/links/:short_code
    DELETE /api/links/id/:link_id
        └─ DeleteResponse (200), deleted may be 0

    GET    /:short_code
        └─ 307 Redirect or 404

Error Mapping
=============
::
    InvalidUrl        → 422
    AllocationFailed  → 500
    not found (None)  → 404

Key Behaviours
===============
- Shortening an already stored URL returns the stored link (still 201).
- Redirects record the visitor's User-Agent and Referer in the visit history.
- Stats never count as a visit.
- 307 redirects preserve the HTTP method.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from shortlinks.dependencies import RequestContext, get_link_service, get_request_context
from shortlinks.enums import HealthStatus
from shortlinks.exceptions import AllocationFailed, InvalidUrl
from shortlinks.link_service import LinkService
from shortlinks.schemas import DeleteResponse, HealthResponse, LinkCreate, LinkResponse, LinkStats

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    store_status = HealthStatus.HEALTHY
    try:
        await ctx.store.ping()
    except Exception as e:
        ctx.logger.error(f"Store health check failed: {e}")
        store_status = HealthStatus.UNHEALTHY

    return HealthResponse(status=store_status, store=store_status)


@router.post("/api/shorten", response_model=LinkResponse, status_code=201, tags=["links"])
async def shorten_url(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    ctx.add_tag("link_creation")
    ctx.logger.info(
        f"Short link requested: {payload.url}",
        extra={"operation": "create_short_link", "target_url": payload.url},
    )

    try:
        link = await service.create_short_link(payload.url)
    except InvalidUrl as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except AllocationFailed as exc:
        ctx.logger.error(
            f"Short link allocation failed: {exc}",
            extra={"operation": "create_short_link", "error": str(exc), "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=500, detail="Could not allocate a short code") from exc

    return LinkResponse.from_link(link, ctx.settings.BASE_URL)


@router.get("/api/stats/{short_code}", response_model=LinkStats, tags=["links"])
async def get_stats(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkStats:
    link = await service.get_stats(short_code)
    if link is None:
        ctx.logger.warning(f"Stats not found for short code: {short_code}")
        raise HTTPException(status_code=404, detail="Short URL not found")

    return LinkStats.from_link(link, ctx.settings.BASE_URL)


@router.get("/api/links", response_model=list[LinkResponse], tags=["links"])
async def list_links(
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> list[LinkResponse]:
    links = await service.list_recent()
    return [LinkResponse.from_link(link, ctx.settings.BASE_URL) for link in links]


@router.delete("/api/links/id/{link_id}", response_model=DeleteResponse, tags=["links"])
async def delete_link_by_id(
    link_id: int,
    service: LinkService = Depends(get_link_service),
) -> DeleteResponse:
    return DeleteResponse(deleted=await service.delete_by_id(link_id))


@router.delete("/api/links/{short_code}", response_model=DeleteResponse, tags=["links"])
async def delete_link_by_code(
    short_code: str,
    service: LinkService = Depends(get_link_service),
) -> DeleteResponse:
    return DeleteResponse(deleted=await service.delete_by_code(short_code))


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")

    original_url = await service.resolve(short_code, user_agent=ctx.user_agent, referrer=ctx.referrer)
    if original_url is None:
        ctx.logger.warning(
            f"Redirect failed - short code not found: {short_code}",
            extra={"operation": "redirect", "short_code": short_code, "error": "not_found"},
        )
        raise HTTPException(status_code=404, detail="Short URL not found")

    ctx.logger.info(
        f"Redirect successful: {short_code} -> {original_url}",
        extra={"operation": "redirect", "short_code": short_code, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=original_url, status_code=307)
