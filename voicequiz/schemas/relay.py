"""
Request/response bodies for the relay HTTP API.

Field names follow the wire format (camelCase).
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from voicequiz.game.models import GameMode


class TokenRequest(BaseModel):
    deviceId: str = Field(..., min_length=1)
    platform: str
    appVersion: str
    gameMode: GameMode
    currentWord: Optional[str] = None
    tabooWords: Optional[List[str]] = None


class TokenResponse(BaseModel):
    value: str
    expiresAt: int


class DescribeRequest(BaseModel):
    word: Optional[str] = None
    taboo: Optional[List[str]] = None
    previousHints: List[str] = Field(default_factory=list)


class DescribeResponse(BaseModel):
    text: str


class GuessRequest(BaseModel):
    transcriptSoFar: Optional[str] = None
    category: Optional[str] = None
    previousGuesses: List[str] = Field(default_factory=list)


class GuessResponse(BaseModel):
    guessText: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
