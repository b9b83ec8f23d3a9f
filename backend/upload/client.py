"""
Submission client — sends one file to the relay and classifies the reply.
"""

import json
import logging

import httpx

from backend import config
from backend.errors import (
    ApplicationError,
    EmptyResponse,
    MalformedJson,
    NetworkError,
    UpstreamApiError,
    UpstreamHtmlError,
)
from backend.models import ExtractionResult, FileHandle
from backend.responses import looks_like_html, message_from, preview

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "ネットワークエラー: サーバーに接続できません"

_PARSE_PREVIEW_CHARS = 100


def relay_url(base_url: str | None = None) -> str:
    return (base_url or config.BACKEND_URL).rstrip("/") + config.PROCESS_PATH


async def submit_file(
    handle: FileHandle,
    user_id: str | None = None,
    *,
    url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ExtractionResult:
    """
    POST *handle* to the relay and return the parsed extraction result.

    The body is read as text first so that HTML error pages and empty bodies
    are reported as such instead of as a JSON decode failure.
    """
    url = url or relay_url()
    user_id = user_id or config.DEFAULT_USER_ID
    logger.info(
        "Sending %s to relay (%d bytes, %s)",
        handle.name, handle.size, handle.content_type,
    )

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=config.WORKFLOW_TIMEOUT + 5) as own_client:
                response = await _post(own_client, url, handle, user_id)
        else:
            response = await _post(client, url, handle, user_id)
    except httpx.TransportError as e:
        logger.error("Relay unreachable: %s", e)
        raise NetworkError(NETWORK_ERROR_MESSAGE) from e

    return parse_relay_response(response.status_code, response.text)


async def _post(
    client: httpx.AsyncClient, url: str, handle: FileHandle, user_id: str
) -> httpx.Response:
    return await client.post(
        url,
        data={"userId": user_id},
        files={"file": (handle.name, handle.data, handle.content_type)},
    )


def parse_relay_response(status: int, text: str) -> ExtractionResult:
    """Classify a relay reply given its status code and raw body text."""
    logger.debug("Relay response %d: %s", status, text)

    if not text:
        raise EmptyResponse("空のレスポンスが返されました")

    if looks_like_html(text):
        raise UpstreamHtmlError(
            f"サーバーエラー: HTML応答が返されました (Status: {status})",
            status_code=status,
        )

    try:
        payload = json.loads(text)
    except ValueError as e:
        raise MalformedJson(f"JSON解析エラー: {preview(text, _PARSE_PREVIEW_CHARS)}...") from e

    if not 200 <= status < 300:
        message = message_from(payload, "error", "message") or f"HTTP error! status: {status}"
        raise UpstreamApiError(message, status_code=status)

    if not isinstance(payload, dict) or not payload.get("success"):
        raise ApplicationError(message_from(payload, "error", "message") or "API処理が失敗しました")

    return ExtractionResult.model_validate(payload)
