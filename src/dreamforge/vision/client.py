"""Vision provider abstraction with a Moondream cloud API backend."""

from __future__ import annotations

import asyncio
import base64
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from dreamforge.config import VisionConfig
from dreamforge.core.errors import VisionProviderError
from dreamforge.log import get_logger
from dreamforge.vision.models import (
    CaptionResult,
    DetectedObject,
    DetectResult,
    LocatedPoint,
    PointResult,
    QueryResult,
)

logger = get_logger(__name__)

DEFAULT_TEXT_CONFIDENCE = 0.9


class VisionProvider(ABC):
    """The four vision capabilities the executor dispatches to."""

    @abstractmethod
    async def detect(self, image: bytes, target: Optional[str], threshold: float) -> DetectResult:
        ...

    @abstractmethod
    async def point(self, image: bytes, query: str) -> PointResult:
        ...

    @abstractmethod
    async def query(self, image: bytes, question: str) -> QueryResult:
        ...

    @abstractmethod
    async def caption(self, image: bytes, style: Optional[str]) -> CaptionResult:
        ...


class MoondreamClient(VisionProvider):
    """Moondream cloud API client.

    Without an API key the client answers with canned demo results so the
    rest of the application can be exercised end to end.
    """

    def __init__(self, config: VisionConfig, session: requests.Session | None = None):
        self._api_key = config.api_key.strip()
        self._base_url = config.base_url.rstrip("/")
        self._timeout = config.timeout
        self._session = session or requests.Session()
        if not self._api_key:
            logger.warning("vision_demo_mode", reason="no Moondream API key configured")

    @property
    def demo_mode(self) -> bool:
        return not self._api_key

    async def detect(self, image: bytes, target: Optional[str], threshold: float) -> DetectResult:
        target = target or "objects"
        if self.demo_mode:
            label = "person" if target == "objects" else target
            return DetectResult(
                objects=[DetectedObject(label=label, confidence=0.85, bbox=[100, 100, 200, 300])],
                confidence=0.85,
            )

        data = await self._post("detect", {"image_url": _data_url(image), "object": target})
        raw_objects = data.get("objects") or []
        if not isinstance(raw_objects, list):
            raise VisionProviderError("Detection failed: 'objects' is not a list")
        objects = [_parse_object(item, target) for item in raw_objects]
        # Unscored objects parse as 0.0; only reported scores are filtered.
        objects = [o for o in objects if o.confidence == 0.0 or o.confidence >= threshold]
        return DetectResult(objects=objects, confidence=objects[0].confidence if objects else 0)

    async def point(self, image: bytes, query: str) -> PointResult:
        if self.demo_mode:
            return PointResult(points=[LocatedPoint(x=150, y=200, confidence=0.9)], confidence=0.9)

        data = await self._post("point", {"image_url": _data_url(image), "object": query})
        raw_points = data.get("points") or []
        if not isinstance(raw_points, list):
            raise VisionProviderError("Pointing failed: 'points' is not a list")
        points = [_parse_point(item) for item in raw_points]
        first = points[0].confidence if points else None
        return PointResult(points=points, confidence=first or 0)

    async def query(self, image: bytes, question: str) -> QueryResult:
        if self.demo_mode:
            return QueryResult(
                answer=(
                    f"This image appears to show a scene related to: {question}. "
                    "(Demo mode - add your Moondream API key for real analysis)"
                ),
                confidence=0.8,
            )

        data = await self._post("query", {"image_url": _data_url(image), "question": question})
        answer = data.get("answer") or ""
        if not isinstance(answer, str):
            raise VisionProviderError("Query failed: 'answer' is not a string")
        return QueryResult(answer=answer, confidence=_text_confidence(data))

    async def caption(self, image: bytes, style: Optional[str]) -> CaptionResult:
        if self.demo_mode:
            return CaptionResult(
                caption=(
                    "This image shows a scene with various elements. "
                    "(Demo mode - add your Moondream API key for detailed analysis)"
                ),
                confidence=0.8,
            )

        # The API only knows "short" and "normal" lengths.
        length = "short" if style == "brief" else "normal"
        data = await self._post("caption", {"image_url": _data_url(image), "length": length})
        caption = data.get("caption") or ""
        if not isinstance(caption, str):
            raise VisionProviderError("Captioning failed: 'caption' is not a string")
        return CaptionResult(caption=caption, confidence=_text_confidence(data))

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST off the event loop and return the decoded JSON object."""
        logger.info("vision_request", endpoint=endpoint)
        return await asyncio.to_thread(self._post_sync, endpoint, {**body, "stream": False})

    def _post_sync(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.post(
                f"{self._base_url}/{endpoint}",
                json=body,
                headers={"X-Moondream-Auth": self._api_key},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise VisionProviderError(f"Moondream {endpoint} request failed: {e}") from e

        if not response.ok:
            raise VisionProviderError(
                f"Moondream API error: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise VisionProviderError(f"Moondream {endpoint} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise VisionProviderError(f"Moondream {endpoint} returned {type(data).__name__}, expected object")

        logger.info("vision_response", endpoint=endpoint, keys=sorted(data))
        return data


def _data_url(image: bytes) -> str:
    return f"data:image/jpeg;base64,{base64.b64encode(image).decode()}"


def _number(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _text_confidence(data: dict[str, Any]) -> float:
    reported = _number(data.get("confidence"))
    return DEFAULT_TEXT_CONFIDENCE if reported is None else reported


def _parse_object(item: object, default_label: str) -> DetectedObject:
    if not isinstance(item, dict):
        raise VisionProviderError("Detection failed: malformed object entry")
    # Moondream returns normalized corners; other providers send a bbox list.
    if "bbox" in item and isinstance(item["bbox"], list):
        bbox = [float(v) for v in item["bbox"]]
    else:
        try:
            bbox = [float(item[k]) for k in ("x_min", "y_min", "x_max", "y_max")]
        except (KeyError, TypeError, ValueError) as e:
            raise VisionProviderError("Detection failed: object without bounding box") from e
    label = item.get("label") or item.get("name") or default_label
    return DetectedObject(label=str(label), confidence=_number(item.get("confidence")) or 0.0, bbox=bbox)


def _parse_point(item: object) -> LocatedPoint:
    if not isinstance(item, dict):
        raise VisionProviderError("Pointing failed: malformed point entry")
    x, y = _number(item.get("x")), _number(item.get("y"))
    if x is None or y is None:
        raise VisionProviderError("Pointing failed: point without coordinates")
    return LocatedPoint(x=x, y=y, confidence=_number(item.get("confidence")))
