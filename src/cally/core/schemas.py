"""Shared Pydantic base model for API-facing records.

API payloads are camelCase (the browser client's convention) while Python
attributes stay snake_case; ApiModel accepts either on input and serializes
by alias.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for every record exchanged with the web client."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_api(self) -> dict[str, Any]:
        """Serialize by alias, dropping unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
