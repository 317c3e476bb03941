"""Common API response models."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str
    dhcp_running: bool = False


class FailureDetail(BaseModel):
    kind: str
    retryable: bool
    message: str


class ErrorResponse(BaseModel):
    detail: FailureDetail
