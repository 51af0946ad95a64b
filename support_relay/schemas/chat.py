from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# All fields are optional; missing values are reported by the services
# with the same messages on both transports.


class ChatRequestBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserRequest(ChatRequestBase):
    user_id: Optional[str] = Field(default=None, alias="userId")
    username: Optional[str] = None


class HistoryRequest(ChatRequestBase):
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatMessageRequest(ChatRequestBase):
    user_id: Optional[str] = Field(default=None, alias="userId")
    message: Optional[str] = None
    admin_id: Optional[str] = Field(default=None, alias="adminId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class MessageUpdateRequest(ChatRequestBase):
    content: Optional[str] = None
    admin_id: Optional[str] = Field(default=None, alias="adminId")


class MessageEditRequest(ChatRequestBase):
    content: Optional[str] = None
    admin_id: Optional[str] = Field(default=None, alias="adminId")
    reason: Optional[str] = None


class AdminActionRequest(ChatRequestBase):
    admin_id: Optional[str] = Field(default=None, alias="adminId")
