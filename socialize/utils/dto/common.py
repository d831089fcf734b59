from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Body shape of every API response."""

    status: str = "success"
    message: Optional[str] = None
    data: Optional[T] = None


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Success body; the route's ``response_model`` validates and serializes ``data``."""
    return {"status": "success", "message": message, "data": data}
