"""Inbound request model for the single-image inference endpoint."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dreamforge.storage.models import PROMPT_MAX_LENGTH

_DATA_URL_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def decode_image(value: str) -> bytes:
    """Decode base64 image data, accepting a data-URL prefix and missing padding."""
    payload = _WHITESPACE.sub("", _DATA_URL_PREFIX.sub("", value.strip()))
    payload += "=" * (-len(payload) % 4)
    return base64.b64decode(payload, validate=True)


class DreamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(min_length=1, max_length=PROMPT_MAX_LENGTH)
    image: str = Field(min_length=1)
    use_planner: bool = Field(default=True, alias="useAnthropicPlanner")

    @field_validator("image")
    @classmethod
    def _image_is_base64(cls, value: str) -> str:
        try:
            decoded = decode_image(value)
        except (binascii.Error, ValueError) as e:
            raise ValueError("image must be base64-encoded data") from e
        if not decoded:
            raise ValueError("image must not be empty")
        return value

    def image_bytes(self) -> bytes:
        return decode_image(self.image)


@dataclass(frozen=True, slots=True)
class ClientInfo:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
