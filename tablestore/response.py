from typing import Any, Optional
from pydantic import BaseModel

def _jsonable(data: Any) -> Any:
    """Entities and other pydantic models go out as JSON-mode dicts (UUIDs, datetimes as strings)."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_jsonable(item) for item in data]
    return data

class ResponseModel(BaseModel):
    code: int = 200
    message: str = "success"
    data: Optional[Any] = None

    @staticmethod
    def success(data: Any = None):
        return {"code": 200, "message": "success", "data": _jsonable(data)}

    @staticmethod
    def fail(code: int = 400, message: str = "error", data: Any = None):
        return {"code": code, "message": message, "data": _jsonable(data)}
