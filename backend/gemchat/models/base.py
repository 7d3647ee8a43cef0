"""Shared pydantic base for persisted models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Model serialized with camelCase keys (``isLoading``, ``lastUpdatedAt``).

    Stored documents and export files use the aliases; Python code uses
    the snake_case field names. Both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
