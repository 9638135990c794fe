"""
Response helper utilities for turning PostgREST rows into pydantic models
"""
from typing import Any, Dict, List, Optional
import uuid
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def convert_uuids_to_strings(obj: Any) -> Any:
    """
    Recursively convert UUID objects to strings in any data structure
    """
    if isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: convert_uuids_to_strings(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_uuids_to_strings(item) for item in obj]
    else:
        return obj


class RowModel(BaseModel):
    """
    Base model for rows of the hosted schema: snake_case in Python, camelCase on the wire
    """

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @classmethod
    def model_validate(cls, obj: Any, **kwargs):
        return super().model_validate(convert_uuids_to_strings(obj), **kwargs)

    def to_row(self, **kwargs) -> Dict[str, Any]:
        """Dump with camelCase keys, ready for insert/update"""
        return self.model_dump(by_alias=True, mode="json", **kwargs)


def safe_model_validate(model_class, data: Any):
    if data is None:
        return None
    return model_class.model_validate(data)


def safe_model_validate_list(model_class, data_list: Optional[List[Any]]) -> List[Any]:
    return [safe_model_validate(model_class, item) for item in (data_list or [])]


def response_rows(response) -> List[Dict[str, Any]]:
    """Rows of a PostgREST response, always a list"""
    data = getattr(response, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


def first_row(response) -> Optional[Dict[str, Any]]:
    rows = response_rows(response)
    return rows[0] if rows else None


def extract_realtime_record(payload: Any) -> Optional[Dict[str, Any]]:
    """
    Pull the new row out of a postgres_changes payload.
    realtime-py nests it under data.record, the JS shape uses new.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("record", "new"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return None


def response_count(response) -> int:
    """Exact count of a ``count="exact"`` select, falling back to the returned rows"""
    count = getattr(response, "count", None)
    if count is None:
        return len(response_rows(response))
    return int(count)
