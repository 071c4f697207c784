"""Anti-forgery token endpoint."""

from typing import Optional

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from trustgate.config.settings import TOKEN_ENDPOINT_PATH
from trustgate.core.logging import get_logger
from trustgate.core.middleware import get_client_ip
from trustgate.gate.identity import resolve_identity
from trustgate.gate.service import TrustGateway

logger = get_logger(__name__)
router = APIRouter(tags=["csrf"])

# Tokens are per identity and must never be cached
_TOKEN_CACHE_CONTROL = "no-store"


class TokenResponse(BaseModel):
    """Token-fetch response body."""

    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str]
    authenticated: bool
    expires_in_seconds: int = Field(alias="expiresInSeconds")


@router.get(TOKEN_ENDPOINT_PATH, response_model=TokenResponse, response_model_by_alias=True)
async def get_csrf_token(request: Request, response: Response) -> TokenResponse:
    """Issue an anti-forgery token for the current identity.

    Callable without a token (bootstrap). Anonymous callers get
    ``token: null`` and ``authenticated: false``.
    """
    gateway: TrustGateway = request.app.state.gateway
    identity = await resolve_identity(request)
    client_ip, _ = get_client_ip(request)

    response.headers["Cache-Control"] = _TOKEN_CACHE_CONTROL
    issued = await gateway.issue_token(identity, client_ip)

    if issued.authenticated:
        logger.info(
            "Issued anti-forgery token",
            data={"identity_id": identity.identity_id},
        )
    return TokenResponse(**issued.as_response())
