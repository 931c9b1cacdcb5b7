"""
统一响应结构
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class ServiceResponse(BaseModel):
    """服务层统一返回：{success, message, data, statusCode}"""
    success: bool
    message: str
    data: Optional[Any] = None
    status_code: int = Field(alias="statusCode")

    class Config:
        populate_by_name = True

    @classmethod
    def ok(cls, message: str, data: Any = None, status_code: int = 200) -> "ServiceResponse":
        return cls(success=True, message=message, data=data, status_code=status_code)

    @classmethod
    def failure(cls, message: str, data: Any = None, status_code: int = 400) -> "ServiceResponse":
        return cls(success=False, message=message, data=data, status_code=status_code)
