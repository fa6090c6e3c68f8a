"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 500


class GenerationRequest(BaseModel):
    """The three form inputs, validated and frozen once submitted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = Field(default="", validate_default=True, description="Free-text self description")
    art_style: str = Field(default="", alias="artStyle", validate_default=True, description="Art style catalogue value")
    game_name: str = Field(default="", alias="gameName", validate_default=True, description="Game influencing the style")

    @field_validator("description")
    @classmethod
    def check_description(cls, value: str) -> str:
        if len(value) < DESCRIPTION_MIN_LENGTH:
            raise PydanticCustomError(
                "description_too_short",
                f"Description should be at least {DESCRIPTION_MIN_LENGTH} characters",
            )
        if len(value) > DESCRIPTION_MAX_LENGTH:
            raise PydanticCustomError(
                "description_too_long",
                f"Description should not exceed {DESCRIPTION_MAX_LENGTH} characters",
            )
        return value

    @field_validator("art_style")
    @classmethod
    def check_art_style(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("art_style_missing", "Please select an art style")
        return value

    @field_validator("game_name")
    @classmethod
    def check_game_name(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("game_name_missing", "Game name is required")
        return value


class DescriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., min_length=1, description="User self description")
    game_style: str = Field(..., min_length=1, alias="gameStyle", description="Style context")


class DescriptionResponse(BaseModel):
    description: str


class ImageRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="Prompt passed to the image model")


class ImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., alias="imageUrl")


class ImageEventRequest(BaseModel):
    """Render outcome reported by a browser displaying the image itself."""

    model_config = ConfigDict(populate_by_name=True)

    event: Literal["load", "error"]
    error_type: Optional[str] = Field(default=None, alias="errorType")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class SessionResponse(BaseModel):
    """Response returned after session creation."""

    session_id: str = Field(..., description="Identifier for the avatar session")
    status: str = Field(default="empty", description="Initial result status")


class ImageDisplayView(BaseModel):
    state: str
    url: Optional[str] = None
    is_temporary: bool = False
    retry_count: int = 0
    max_retries: int = 2
    strategy: str = "optimized"
    timeout_seconds: Optional[float] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class ResultView(BaseModel):
    """What the result panel should show and which actions it offers."""

    session_id: Optional[str] = None
    status: str
    message: Optional[str] = None
    notice: Optional[str] = None
    style: Optional[str] = None
    image_url: Optional[str] = None
    actions: List[str] = Field(default_factory=list)
    image: Optional[ImageDisplayView] = None


class ErrorBody(BaseModel):
    kind: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
