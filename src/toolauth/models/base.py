from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class WireModel(BaseModel):
    """Base for models that travel as camelCase JSON.

    Attributes are snake_case in Python and aliased to the OpenAPI/JSON field
    names. Either spelling is accepted on input.
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire field names, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
