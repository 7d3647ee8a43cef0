"""Quick prompt models."""

from pydantic import Field, field_validator

from gemchat.models.base import CamelModel
from gemchat.utils.ids import new_id


class QuickPrompt(CamelModel):
    """A saved prompt the user can insert into the input with one click."""

    id: str = Field(default_factory=new_id)
    title: str
    text: str


class QuickPromptRequest(CamelModel):
    """Body for creating or editing a quick prompt."""

    title: str
    text: str

    @field_validator("title", "text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title and prompt text are required.")
        return value


class QuickPromptListResponse(CamelModel):
    """Response for listing quick prompts."""

    prompts: list[QuickPrompt]
    total: int
