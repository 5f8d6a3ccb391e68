"""
Prompt-completion endpoints: Mode A hints and Mode B guesses
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from voicequiz.core.logging import get_logger
from voicequiz.core.rate_limit import relay_limit
from voicequiz.schemas.relay import DescribeRequest, DescribeResponse, ErrorResponse, GuessRequest, GuessResponse
from voicequiz.services.openai_relay_service import OpenAIRelayService, get_relay_service

router = APIRouter(tags=["prompts"])
logger = get_logger(__name__)

_ERROR_RESPONSES = {400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}}


def _missing_fields(fields: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": f"Missing required fields: {fields}"})


@router.post("/modeA/describe", response_model=DescribeResponse, responses=_ERROR_RESPONSES)
@relay_limit
async def describe_word(
    request: Request,
    body: DescribeRequest,
    service: OpenAIRelayService = Depends(get_relay_service),
):
    if not body.word or body.taboo is None:
        return _missing_fields("word, taboo")

    text = await service.describe(body.word, body.taboo, body.previousHints)
    return DescribeResponse(text=text)


@router.post("/modeB/guess", response_model=GuessResponse, responses=_ERROR_RESPONSES)
@relay_limit
async def guess_word(
    request: Request,
    body: GuessRequest,
    service: OpenAIRelayService = Depends(get_relay_service),
):
    if not body.transcriptSoFar or not body.category:
        return _missing_fields("transcriptSoFar, category")

    guess_text = await service.guess(body.transcriptSoFar, body.category, body.previousGuesses)
    return GuessResponse(guessText=guess_text)
