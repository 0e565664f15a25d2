from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.engine.row import Row


class CustomBaseModel(BaseModel):
    """Custom base model for all response schemas.
    - fields are snake_case in python and camelCase on the wire
    - accepts both spellings on input
    - can be built straight from ORM objects, rows and dicts
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @classmethod
    def from_record(cls, record: Any):
        if isinstance(record, Row):
            return cls(**record._asdict())
        elif isinstance(record, dict):
            return cls.model_validate(record)
        elif hasattr(record, "__table__"):
            return cls.model_validate(record, from_attributes=True)
        else:
            raise ValueError(f"Invalid record type: {type(record)}")


class Message(CustomBaseModel):
    message: str = ""
