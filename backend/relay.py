"""
Relay to the Dify workflow API. This is the only place that holds the API key.

    multipart file from the browser
      → re-validate type / size
      → multipart to the workflow API (bearer auth, blocking mode)
      → classify upstream errors
      → flatten ``data.outputs`` into an ExtractionResult
"""

import json
import logging

import httpx

from backend import config
from backend.errors import (
    ConfigurationError,
    MalformedJson,
    NetworkError,
    UnexpectedPayload,
    UpstreamApiError,
    UpstreamHtmlError,
    ValidationError,
)
from backend.models import ExtractionResult, FileHandle
from backend.responses import looks_like_html, message_from, preview
from backend.validation import rejection_reason

logger = logging.getLogger(__name__)

CONFIG_ERROR_MESSAGE = "サーバー設定エラー: API URLまたはAPI Keyが設定されていません"
NETWORK_ERROR_MESSAGE = "ネットワークエラー: Dify APIに接続できません。URL設定を確認してください。"
MISSING_FILE_MESSAGE = "ファイルが見つかりません"

_PARSE_PREVIEW_CHARS = 200


def require_configuration() -> tuple[str, str]:
    """Return ``(api_url, api_key)`` or raise ConfigurationError if either is unset."""
    api_url = config.DIFY_API_URL
    api_key = config.DIFY_API_KEY
    logger.info("Environment check: has_api_url=%s has_api_key=%s", bool(api_url), bool(api_key))
    if not api_url or not api_key:
        raise ConfigurationError(CONFIG_ERROR_MESSAGE)
    return api_url, api_key


def check_upload(upload: FileHandle | None) -> FileHandle:
    """Server-side re-validation of an incoming file."""
    if upload is None:
        raise ValidationError(MISSING_FILE_MESSAGE)
    reason = rejection_reason(upload.content_type, upload.size)
    if reason:
        raise ValidationError(reason)
    return upload


async def relay_upload(
    client: httpx.AsyncClient,
    upload: FileHandle,
    user_id: str,
    api_url: str,
    api_key: str,
) -> ExtractionResult:
    """
    Forward one file to the workflow API and normalize the outcome.

    Raises an :class:`~backend.errors.UploadError` subclass for every failure
    mode; the caller turns it into a ``{success: false, error}`` response.
    """
    upload = check_upload(upload)
    logger.info(
        "Relaying %s (%d bytes, %s) for user %s",
        upload.name, upload.size, upload.content_type, user_id,
    )

    try:
        response = await client.post(
            api_url,
            headers={"Authorization": f"Bearer {api_key}"},
            data={
                "inputs": json.dumps({}),
                "response_mode": "blocking",
                "user": user_id,
            },
            files={"files": (upload.name, upload.data, upload.content_type)},
        )
    except httpx.TransportError as e:
        logger.error("Workflow API unreachable: %s", e)
        raise NetworkError(NETWORK_ERROR_MESSAGE) from e

    logger.info("Workflow API response status: %d", response.status_code)
    text = response.text

    if not response.is_success:
        raise _upstream_error(response.status_code, text)

    logger.debug("Workflow API raw response: %s", text)
    try:
        payload = json.loads(text)
    except ValueError as e:
        logger.error("Workflow API returned invalid JSON: %s", e)
        raise MalformedJson(
            "レスポンス解析エラー: 無効なJSON形式です。"
            f"レスポンス: {preview(text, _PARSE_PREVIEW_CHARS)}..."
        ) from e

    return normalize_workflow_payload(payload)


def normalize_workflow_payload(payload) -> ExtractionResult:
    """Flatten ``{data: {outputs: {...}, workflow_run_id, ...}}`` into an ExtractionResult."""
    data = payload.get("data") if isinstance(payload, dict) else None
    outputs = data.get("outputs") if isinstance(data, dict) else None
    if not isinstance(outputs, dict):
        logger.error("Invalid workflow response structure: %r", payload)
        raise UnexpectedPayload(
            f"無効なレスポンス形式: {json.dumps(payload, ensure_ascii=False)}"
        )

    return ExtractionResult(
        renamed_filename=outputs.get("renamed_filename"),
        company=outputs.get("company"),
        date=outputs.get("date"),
        amount=outputs.get("amount"),
        description=outputs.get("description"),
        workflow_run_id=data.get("workflow_run_id"),
        elapsed_time=data.get("elapsed_time"),
        total_tokens=data.get("total_tokens"),
    )


def _upstream_error(status: int, text: str) -> UpstreamApiError | UpstreamHtmlError:
    logger.error("Workflow API error response (%d): %s", status, text)

    if looks_like_html(text):
        return UpstreamHtmlError(
            f"Dify API エラー ({status}): サーバーエラーが発生しました。"
            "API URLとKeyを確認してください。"
        )

    try:
        payload = json.loads(text)
    except ValueError:
        return UpstreamApiError(f"Dify API エラー ({status}): {text}", status_code=status)

    message = message_from(payload, "message") or text
    return UpstreamApiError(f"Dify API エラー: {message}", status_code=status)
