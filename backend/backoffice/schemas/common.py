"""Response envelopes shared by every endpoint"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class ActionResponse(BaseModel, Generic[DataT]):
    """success + data, with an optional non-blocking warning"""
    success: bool = True
    data: Optional[DataT] = None
    warning: Optional[str] = None


class PageResponse(BaseModel, Generic[DataT]):
    data: List[DataT]
    total: int
    page: int
    limit: int


AnyResponse = ActionResponse[Any]
