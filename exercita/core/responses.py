from typing import Generic, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class StandardResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""
    data: Optional[T] = None
    message: Optional[str] = None
    success: bool = True
