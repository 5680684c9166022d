"""Shared pydantic base for documents stored alongside the web application."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StoredModel(BaseModel):
    """Snake_case in Python, camelCase in the document store."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self, mode: str = "python") -> dict:
        """Dump for storage; ``id`` is the document key, never a field."""
        return self.model_dump(by_alias=True, exclude={"id"}, mode=mode)
