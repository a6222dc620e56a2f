"""
Wire Model Base

The auction server speaks camelCase JSON and uses numeric or string ids
interchangeably; models keep snake_case attributes and normalize ids to str.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every payload exchanged with the auction server"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize to the camelCase JSON shape the server expects"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
