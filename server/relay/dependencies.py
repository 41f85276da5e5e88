"""
Dependency injection for FastAPI application.
"""

from typing import Optional

from fastapi import Header, HTTPException, Query, Request, WebSocket

from relay.config import settings
from relay.services.ingestion import IngestionAdapter
from relay.services.relay import ImageRelay


def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> str:
    """Verify API key from request header."""
    if not x_api_key or x_api_key != settings.api_key:
        raise HTTPException(
            status_code=401,
            detail="Invalid API key"
        )
    return x_api_key


def extract_viewer_token(token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """Token from the ``token`` query parameter, else from a Bearer header."""
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:]
    return None


def viewer_token_valid(token: Optional[str]) -> bool:
    """True when no viewer token is configured or the token matches it."""
    return not settings.viewer_token or token == settings.viewer_token


def verify_viewer(
    token: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None)
) -> None:
    """Verify the viewer token on REST snapshot queries."""
    if not viewer_token_valid(extract_viewer_token(token, authorization)):
        raise HTTPException(
            status_code=401,
            detail="Invalid viewer token"
        )


def websocket_viewer_allowed(websocket: WebSocket) -> bool:
    """Viewer token check for a WebSocket handshake."""
    token = extract_viewer_token(
        websocket.query_params.get("token"),
        websocket.headers.get("authorization")
    )
    return viewer_token_valid(token)


def get_relay(request: Request) -> ImageRelay:
    """Get image relay from app state."""
    return request.app.state.relay


def get_ingestion(request: Request) -> IngestionAdapter:
    """Get ingestion adapter from app state."""
    return request.app.state.ingestion
