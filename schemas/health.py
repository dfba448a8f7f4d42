from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    sessions: int
    connections: int
