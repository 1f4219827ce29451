from typing import Literal

from pydantic import BaseModel

ReadinessStatus = Literal["ok", "error"]


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ReadinessDependency(BaseModel):
    name: str
    status: ReadinessStatus


class ReadinessResponse(BaseModel):
    status: Literal["ok", "degraded"]
    dependencies: list[ReadinessDependency]
