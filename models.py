# models.py
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """One entry of a conversation transcript."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"]
    text: str

    def to_content(self) -> Dict[str, object]:
        # shape expected by google-genai `contents`
        return {"role": self.role, "parts": [{"text": self.text}]}


class ModelInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class Part(BaseModel):
    text: str = ""


class WireMessage(BaseModel):
    role: Literal["user", "model"]
    parts: List[Part] = Field(default_factory=list)

    def to_message(self) -> Message:
        return Message(role=self.role, text="".join(p.text for p in self.parts))


class ChatRequest(BaseModel):
    model: str = Field(..., description="Catalog id (or key) of the model to address")
    messages: List[WireMessage] = Field(
        default_factory=list,
        description="Full running history, ending with the new user message",
    )


class ChatResponse(BaseModel):
    text: str


class ErrorResponse(BaseModel):
    error: str
