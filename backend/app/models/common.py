"""
backend/app/models/common.py

Purpose:
    Shared Pydantic V2 model helpers, including BSON ObjectId validation and
    JSON serialization for Mongo-backed request bodies.

Dependencies:
    - bson.ObjectId
    - pydantic.GetCoreSchemaHandler
    - pydantic_core.core_schema
"""

from typing import Any

from bson import ObjectId
from pydantic import BaseModel, GetCoreSchemaHandler, model_validator
from pydantic_core import core_schema


def _parse_object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValueError("Invalid id.")
    return ObjectId(value)


class PyObjectId(str):
    """Pydantic V2 bridge type for BSON ObjectId.

    Accepts an ObjectId or its 24-char hex form; anything else is a
    validation error (400) rather than an unhandled InvalidId.
    """

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.no_info_after_validator_function(
                _parse_object_id, core_schema.str_schema()
            ),
            python_schema=core_schema.union_schema(
                [
                    core_schema.is_instance_schema(ObjectId),
                    core_schema.no_info_after_validator_function(
                        _parse_object_id, core_schema.str_schema()
                    ),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda x: str(x)
            ),
        )


class PartialUpdate(BaseModel):
    """Base for PUT bodies: omitted fields stay as they are, explicit nulls are rejected."""

    @model_validator(mode="before")
    @classmethod
    def reject_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            nulls = sorted(k for k, v in data.items() if v is None)
            if nulls:
                raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return data
