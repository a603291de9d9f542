"""
FastAPI routes for the login flow and session-gated resources.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from http import HTTPStatus
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from session_gateway.api.guard import (
    AccessContext,
    AuthenticatedRouteGuard,
    clear_session_cookie,
    read_session_id,
    write_session_cookie,
)
from session_gateway.clients.google_auth import ProviderError
from session_gateway.clients.user_store import RepositoryError
from session_gateway.dependencies import (
    get_app_settings,
    get_google_oauth_client,
    get_http_client,
    get_login_service,
    get_oauth_state_encoder,
    get_session_cookie_encoder,
    get_session_store,
)
from session_gateway.utils.signing import InvalidSignatureError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_class=HTMLResponse)
async def home() -> str:
    return '<a href="/auth/start">Login with Google</a>'


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/start")
async def start_oauth_flow(
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
) -> RedirectResponse:
    """Redirect the browser to the Google consent screen."""
    state = state_encoder.encode({"nonce": uuid.uuid4().hex})
    authorization_url = oauth_client.build_authorization_url(state=state)
    return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)


@router.get("/auth/callback")
async def handle_oauth_callback(
    login_service: Annotated[Any, Depends(get_login_service)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    cookie_encoder: Annotated[Any, Depends(get_session_cookie_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(default=None, description="Authorization code returned by Google."),
    state: str | None = Query(default=None, description="OAuth state token."),
    error: str | None = Query(default=None, description="Error reported by Google."),
) -> RedirectResponse:
    """Complete the code exchange, persist the identity and start a session."""
    if error:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Authorization was not granted: {error}",
        )
    if not code or not state:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing code or state in OAuth callback.",
        )

    try:
        state_encoder.decode(
            state, max_age=timedelta(seconds=settings.oauth.state_ttl_seconds)
        )
    except InvalidSignatureError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    try:
        snapshot = await login_service.complete_login(code)
    except (ProviderError, RepositoryError) as exc:
        logger.error("OAuth callback failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc

    response = RedirectResponse(url=settings.landing_path, status_code=HTTPStatus.FOUND)
    write_session_cookie(response, snapshot.session_id, cookie_encoder, settings)
    return response


@router.get("/profile", response_model=None)
async def profile(
    request: Request,
    session_store: Annotated[Any, Depends(get_session_store)],
    cookie_encoder: Annotated[Any, Depends(get_session_cookie_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> PlainTextResponse | RedirectResponse:
    """Greet the logged-in user; anonymous visitors go back home."""
    session_id = read_session_id(request, cookie_encoder, settings)
    snapshot = await session_store.get(session_id) if session_id else None
    if snapshot is None:
        return RedirectResponse(url="/", status_code=HTTPStatus.FOUND)
    return PlainTextResponse(f"Hello, {snapshot.record.display_name}")


@router.get("/logout")
async def logout(
    request: Request,
    login_service: Annotated[Any, Depends(get_login_service)],
    cookie_encoder: Annotated[Any, Depends(get_session_cookie_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> RedirectResponse:
    session_id = read_session_id(request, cookie_encoder, settings)
    if session_id:
        await login_service.logout(session_id)
    response = RedirectResponse(url="/", status_code=HTTPStatus.FOUND)
    clear_session_cookie(response, settings)
    return response


@router.get("/api/data", response_model=None)
async def proxy_provider_data(
    response: Response,
    access: Annotated[AccessContext, AuthenticatedRouteGuard],
    http_client: Annotated[Any, Depends(get_http_client)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> Any:
    """Call a provider API on the user's behalf with the current access token."""
    headers: dict[str, str] = {}
    access.credentials().apply(headers)
    try:
        upstream = await http_client.get(settings.google.data_api_url, headers=headers)
        body = upstream.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Provider API call failed for subject %s: %s", access.subject_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc
    response.status_code = upstream.status_code
    return body


__all__ = ["router"]
