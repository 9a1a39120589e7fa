"""Shared Pydantic schemas for Accord-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "accord-engine"


class ErrorResponse(BaseModel):
    error: str
    code: str
    fields: list[str] = []
