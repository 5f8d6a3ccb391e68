"""
Ephemeral realtime credential endpoint
"""

from fastapi import APIRouter, Depends, Request

from voicequiz.core.logging import get_logger
from voicequiz.core.rate_limit import relay_limit
from voicequiz.schemas.relay import ErrorResponse, TokenRequest, TokenResponse
from voicequiz.services.openai_relay_service import OpenAIRelayService, get_relay_service

router = APIRouter(tags=["realtime"])
logger = get_logger(__name__)


@router.post(
    "/token",
    response_model=TokenResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
@relay_limit
async def issue_token(
    request: Request,
    body: TokenRequest,
    service: OpenAIRelayService = Depends(get_relay_service),
):
    """
    Mint a short-lived Realtime client secret for one connection attempt.

    Mode A sessions are configured with the current word and taboo list;
    Mode B sessions get listener instructions only.
    """
    logger.info(
        "token_requested",
        device_id=body.deviceId,
        platform=body.platform,
        app_version=body.appVersion,
        game_mode=body.gameMode.value,
    )
    secret = await service.create_client_secret(
        body.gameMode.value,
        current_word=body.currentWord,
        taboo=body.tabooWords,
    )
    return TokenResponse(**secret)
