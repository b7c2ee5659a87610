from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Base model for everything that travels inside a strategy document.

    Fields use snake_case in Python and camelCase on the wire. Unknown keys are
    kept so that a load/save cycle never drops data written by newer editors.
    """

    model_config: ConfigDict = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def to_wire_keys(values: Mapping[str, Any]) -> dict[str, Any]:
    """Normalise snake_case keys of a partial update to their wire spelling."""

    # private keys and keys without an underscore are already in wire spelling
    return {(key if key.startswith("_") or "_" not in key else to_camel(key)): value for key, value in values.items()}


__all__ = ["WireModel", "to_wire_keys"]
