"""Server-side narration relay.

The relay is the only component holding the credential for the vision-capable
hosted model. Clients (see :class:`labnarrator.ai.analyzers.CloudProxyAnalyzer`)
post one request per pass::

    {"pass": "inventory" | "narration", "frames": [{"full": ..., "tiles": [...]}],
     "metadata": ..., "inventory": ..., "labTitle": ..., "labObjective": ...}

and receive ``{"inventory": ...}`` or ``{"narration", "segments", "overallConfidence"}``.
Frame and tile counts are capped here, whatever the client sends.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import openai
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from openai import OpenAI

from labnarrator.ai.backends import find_api_key
from labnarrator.ai.exceptions import API_KEY_ENV_VARS
from labnarrator.ai.prompts import INVENTORY_SYSTEM_PROMPT, build_image_parts, narration_messages
from labnarrator.base.confidence import parse_segments, score_overall
from labnarrator.base.exceptions import LabNarratorError
from labnarrator.base.frames import ExtractedFrame

__all__ = ["RelayHandler", "RelayError", "create_app"]

logger = logging.getLogger(__name__)

INVENTORY_MAX_FRAMES = 4
INVENTORY_TILES_PER_FRAME = 2
NARRATION_MAX_FRAMES = 6

DEFAULT_GATEWAY_MODEL = "gpt-4o"
RELAY_MAX_TOKENS = 4096
RELAY_TEMPERATURE = 0.1
RELAY_TIMEOUT = 60.0


class RelayError(LabNarratorError):
    """A relay failure carrying the HTTP status to answer with."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class RelayHandler:
    """Runs inventory and narration passes against the hosted vision model.

    Args:
        api_key: Gateway credential. Defaults to ``RELAY_GATEWAY_API_KEY``.
        base_url: OpenAI-compatible gateway URL. Defaults to ``RELAY_GATEWAY_URL``
            or the OpenAI API.
        model: Vision model requested from the gateway.
        timeout: Timeout in seconds for each gateway call.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = DEFAULT_GATEWAY_MODEL,
        timeout: float = RELAY_TIMEOUT,
    ):
        self.api_key = find_api_key("gateway", api_key)
        self.base_url = base_url or os.environ.get("RELAY_GATEWAY_URL") or None
        self.model = model
        self.timeout = timeout
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self.api_key is None:
            raise RelayError(status.HTTP_500_INTERNAL_SERVER_ERROR, f"{API_KEY_ENV_VARS['gateway']} not configured")
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout, max_retries=0)
        return self._client

    def _complete(self, messages: list[dict[str, Any]]) -> str:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=RELAY_MAX_TOKENS,
                temperature=RELAY_TEMPERATURE,
            )
        except openai.APIStatusError as e:
            raise RelayError(status.HTTP_502_BAD_GATEWAY, f"AI gateway error ({e.status_code}): {e.message}") from e
        except openai.APIError as e:
            raise RelayError(status.HTTP_502_BAD_GATEWAY, f"AI gateway error: {e}") from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    @staticmethod
    def _frames(payload: dict[str, Any], limit: int) -> list[ExtractedFrame]:
        raw_frames = payload.get("frames") or []
        if not isinstance(raw_frames, list):
            raise RelayError(status.HTTP_400_BAD_REQUEST, "frames must be a list")
        try:
            return [ExtractedFrame.from_dict(frame) for frame in raw_frames[:limit]]
        except (KeyError, TypeError, ValueError) as e:
            raise RelayError(status.HTTP_400_BAD_REQUEST, f"Malformed frame: {e}") from e

    def inventory(self, payload: dict[str, Any]) -> dict[str, Any]:
        frames = self._frames(payload, INVENTORY_MAX_FRAMES)
        for frame in frames:
            frame.quadrant_tiles = frame.quadrant_tiles[:INVENTORY_TILES_PER_FRAME]
        intro = f"Analyze these {len(frames)} frames from the lab \"{payload.get('labTitle') or ''}\". List every visible element."
        messages = [
            {"role": "system", "content": INVENTORY_SYSTEM_PROMPT},
            {"role": "user", "content": [{"type": "text", "text": intro}, *build_image_parts(frames, include_tiles=True)]},
        ]
        return {"inventory": self._complete(messages)}

    def narration(self, payload: dict[str, Any]) -> dict[str, Any]:
        frames = self._frames(payload, NARRATION_MAX_FRAMES)
        messages = narration_messages(
            frames,
            payload.get("labTitle") or "",
            payload.get("labObjective") or "",
            payload.get("metadata") or "",
            payload.get("inventory") or "",
        )
        text = self._complete(messages)
        segments = parse_segments(text)
        return {
            "narration": text,
            "segments": [segment.to_dict() for segment in segments],
            "overallConfidence": score_overall(segments).label,
        }

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Dispatch one relay request by its ``pass`` field.

        Raises:
            RelayError: With status 400 for a bad request, 500 when the gateway
                key is missing and 502 when the gateway call fails
        """
        pass_name = payload.get("pass")
        if pass_name == "inventory":
            return self.inventory(payload)
        if pass_name == "narration":
            return self.narration(payload)
        raise RelayError(status.HTTP_400_BAD_REQUEST, 'Invalid pass parameter. Use "inventory" or "narration".')


def create_app(handler: RelayHandler | None = None) -> FastAPI:
    """Build the relay's FastAPI application."""
    relay = handler or RelayHandler()
    app = FastAPI(title="Lab Narration Relay")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "configured": relay.api_key is not None}

    @app.post("/narrate-lab")
    async def narrate_lab(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload must be a JSON object")

        try:
            return await run_in_threadpool(relay.handle, payload)
        except RelayError as e:
            logger.error("narrate-lab %s pass failed: %s", payload.get("pass"), e.message)
            raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return app
