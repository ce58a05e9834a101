"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Skill(StrEnum):
    """Vision skills. Declaration order is the routing tie-break priority."""

    DETECT = "detect"
    POINT = "point"
    QUERY = "query"
    CAPTION = "caption"


class PipelineState(StrEnum):
    RECEIVED = "received"
    ROUTED = "routed"
    EXECUTED = "executed"
    VERIFIED = "verified"
    NARRATED = "narrated"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    VALIDATION_FAILED = "validation_failed"
    EXECUTION_FAILED = "execution_failed"


class DegradationReason(StrEnum):
    """Why an optional LLM-backed step fell back to its local default."""

    UNCONFIGURED = "unconfigured"
    PROVIDER_ERROR = "provider_error"
    INVALID_OUTPUT = "invalid_output"
