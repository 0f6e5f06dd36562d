"""Media token endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from platecall.core.dependencies import get_admission_service
from platecall.services.admission.service import AdmissionService, AdmissionToken

router = APIRouter()
logger = logging.getLogger(__name__)


class TokenRequest(BaseModel):
    """Token request model."""
    model_config = ConfigDict(populate_by_name=True)

    channel: Optional[str] = None
    role: Optional[str] = None
    ttl_seconds: Optional[int] = Field(default=None, alias="ttlSeconds")
    uid: int = 0


class TokenResponse(BaseModel):
    """Token response model."""
    model_config = ConfigDict(populate_by_name=True)

    app_id: str = Field(alias="appId")
    channel: str
    uid: int
    token: str
    expire_at: int = Field(alias="expireAt")


def _to_response(token: AdmissionToken) -> TokenResponse:
    return TokenResponse(
        app_id=token.app_id,
        channel=token.channel,
        uid=token.uid,
        token=token.token,
        expire_at=token.expire_at,
    )


@router.post("/api/agora-token", response_model=TokenResponse)
async def issue_token(
    body: TokenRequest,
    admission: AdmissionService = Depends(get_admission_service),
):
    """Issue a media token for an active vehicle's channel."""
    logger.info(f"[TOKEN] Request - channel: {body.channel!r}, role: {body.role}")
    token = await admission.issue_token(
        body.channel, role=body.role, ttl_seconds=body.ttl_seconds, uid=body.uid
    )
    return _to_response(token)


@router.get("/api/agora-token", response_model=TokenResponse)
async def issue_token_query(
    channel: Optional[str] = None,
    role: Optional[str] = None,
    ttl_seconds: Optional[int] = Query(default=None, alias="ttlSeconds"),
    uid: int = 0,
    admission: AdmissionService = Depends(get_admission_service),
):
    """Same as the POST variant, for manual checks from a browser."""
    token = await admission.issue_token(channel, role=role, ttl_seconds=ttl_seconds, uid=uid)
    return _to_response(token)
