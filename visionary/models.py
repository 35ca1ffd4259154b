"""Pydantic request/response models for the HTTP API."""

from typing import Optional

from pydantic import BaseModel, Field

from visionary.session import MAX_INSTRUCTION_LENGTH


class SessionView(BaseModel):
    status: str = Field(..., description="One of idle, ready, pending, succeeded, failed.")
    before_preview: Optional[str] = Field(None, description="data: URL of the selected 'before' photo.")
    reference_preview: Optional[str] = Field(None, description="data: URL of the selected reference photo.")
    instruction: str
    result_url: Optional[str] = Field(None, description="data: URL of the generated image.")
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    can_submit: bool = False


class InstructionUpdate(BaseModel):
    instruction: str = Field(..., max_length=MAX_INSTRUCTION_LENGTH)


class PreferencesPayload(BaseModel):
    api_key: Optional[str] = Field(None, description="Gemini API key; an empty string removes it.")
    instruction: Optional[str] = Field(None, max_length=MAX_INSTRUCTION_LENGTH)


class PreferencesView(BaseModel):
    has_credential: bool
    instruction: Optional[str] = None
