from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict


class CreateShareRequest(BaseModel):
    text: Optional[str] = None
    expires_at: Optional[str] = None
    password: Optional[str] = None
    one_time_view: bool = False
    max_views: Optional[Union[int, str]] = None


class UploadedFile(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    filename: str
    content_type: Optional[str] = None
    stream: Any


class ReportRequest(BaseModel):
    reason: Optional[str] = None


class RegisterIn(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginIn(BaseModel):
    email: str = ""
    password: str = ""
