from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, Generic, TypeVar

T = TypeVar('T')

class ResponseBase(BaseModel, Generic[T]):
    """Common response envelope"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Optional[T] = None

class CamelModel(BaseModel):
    """snake_case fields exchanged as camelCase JSON"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        coerce_numbers_to_str = True
        from_attributes = True
