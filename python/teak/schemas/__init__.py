"""Pydantic schemas for request/response models."""

from teak.schemas.cards import (
    AdmissionCheckOut,
    AdmissionCheckRequest,
    ProcessCardRequest,
    ProcessingStatusOut,
    ScreenshotRecordRequest,
    WorkflowStartOut,
)

__all__ = [
    "AdmissionCheckOut",
    "AdmissionCheckRequest",
    "ProcessCardRequest",
    "ProcessingStatusOut",
    "ScreenshotRecordRequest",
    "WorkflowStartOut",
]
