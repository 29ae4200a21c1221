import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api import deps
from app.core.constants import SUBJECT_PROVIDER, TOKEN_TYPE
from app.core.exceptions import InvalidRequestError, TokenExchangeError
from app.schemas.auth import AuthRequest, AuthResponse, ErrorResponse, SubjectDetails
from app.services.exchange import TokenExchangeService

logger = logging.getLogger(__name__)

router = APIRouter()

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def error_response(error: TokenExchangeError) -> JSONResponse:
    body = ErrorResponse(error=error.error_code, message=error.client_message)
    return JSONResponse(status_code=error.status_code, content=body.model_dump(exclude_none=True))


@router.post(
    "/github-oidc",
    summary="Exchange a GitHub Actions OIDC token",
    response_model=AuthResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": AuthRequest.model_json_schema()}},
        }
    },
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def exchange_github_oidc(
    request: Request,
    service: TokenExchangeService = Depends(deps.get_exchange_service),
):
    """
    Exchange a GitHub Actions OIDC token for a short-lived RoboHub access token.

    Body: `{"oidc_token": "<jwt>"}`. The body is parsed by hand so that every
    malformed request gets the same `invalid_request` error shape.
    """
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning(f"Invalid request body: {e}")
        return error_response(InvalidRequestError("invalid JSON in request body"))

    if not isinstance(body, dict):
        logger.warning("Invalid request body: not a JSON object")
        return error_response(InvalidRequestError("invalid JSON in request body"))

    oidc_token = body.get("oidc_token")
    if oidc_token is None:
        oidc_token = ""
    if not isinstance(oidc_token, str):
        logger.warning("Invalid request body: oidc_token is not a string")
        return error_response(InvalidRequestError("oidc_token must be a string"))

    try:
        result = await service.exchange(oidc_token)
    except TokenExchangeError as e:
        return error_response(e)

    claims = result.claims
    return AuthResponse(
        access_token=result.minted.token,
        expires_in=result.minted.expires_in,
        token_type=TOKEN_TYPE,
        issued_at=result.minted.issued_at.strftime(RFC3339_FORMAT),
        subject=SubjectDetails(
            provider=SUBJECT_PROVIDER,
            repository=claims.repository,
            ref=claims.ref,
            workflow=claims.workflow,
            run_id=claims.run_id,
            actor=claims.actor,
        ),
    )
