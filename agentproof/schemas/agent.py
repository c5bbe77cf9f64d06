from datetime import datetime

from pydantic import BaseModel, Field


class AgentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    owner_wallet: str = Field(default="", max_length=42)
    description: str = ""


class AgentResponse(BaseModel):
    id: str
    name: str
    owner_wallet: str = ""
    description: str = ""
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    content: str = Field(..., min_length=1, max_length=5000)
    reviewer_wallet: str = Field(default="", max_length=42)


class ReviewResponse(BaseModel):
    id: str
    agent_id: str
    rating: int
    content_hash: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MonitoringSampleRequest(BaseModel):
    uptime_hours: float = Field(..., ge=0)
    avg_exec_time_ms: float = Field(..., ge=0)
    request_count: int = Field(..., ge=0)


class EmploymentRequest(BaseModel):
    user_wallet: str = Field(..., min_length=1, max_length=42)
