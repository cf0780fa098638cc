import orjson
from fastapi.responses import ORJSONResponse
from bson import ObjectId
from datetime import datetime, date
from enum import Enum
from pydantic import BaseModel
from typing import Any
from pydantic_core import core_schema


class PyObjectId(ObjectId):
    @classmethod
    def __get_pydantic_core_schema__(cls, source_type, handler):
        return core_schema.no_info_after_validator_function(
            cls.validate,
            core_schema.union_schema([
                core_schema.str_schema(),
                core_schema.is_instance_schema(ObjectId)
            ]),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: str(v), when_used="json"
            ),
        )

    @classmethod
    def validate(cls, v: Any, info: Any = None) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError("Invalid ObjectId")

    @classmethod
    def __get_pydantic_json_schema__(cls, schema, handler):
        return {"type": "string", "pattern": "^[a-fA-F0-9]{24}$"}


class MongoModel(BaseModel):
    """Base for documents stored in Mongo; `_id` is exposed as `id`."""
    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "use_enum_values": True,
    }

    def to_mongo(self) -> dict:
        """Dump for insert_one / $set, keeping ObjectId and datetime native."""
        return self.model_dump(by_alias=True, mode="python")


def bson_default(obj: Any) -> Any:
    """Recursively converts BSON / non-JSON types into serializable ones."""
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple, set)):
        return [bson_default(i) for i in obj]
    if isinstance(obj, dict):
        return {str(k): bson_default(v) for k, v in obj.items()}
    if hasattr(obj, "model_dump"):
        return bson_default(obj.model_dump(by_alias=True))
    return obj


# -------------------------------------------------------------------
# ORJSONResponse for FastAPI that supports MongoDB documents
# -------------------------------------------------------------------
class MongoORJSONResponse(ORJSONResponse):
    """Default response class: normalizes ObjectId / datetime before ORJSON serialization."""
    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        return orjson.dumps(bson_default(content))
