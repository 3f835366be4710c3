from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for payloads exchanged with the upstream API (camelCase on the wire)."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "extra": "ignore"}

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def ref_id(value):
    """Accept either a bare id or a populated document and return the id."""
    if isinstance(value, dict):
        return value.get("_id") or value.get("id")
    return value
