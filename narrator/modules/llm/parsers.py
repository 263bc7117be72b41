from __future__ import annotations

import json
import re
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from narrator.modules.llm.errors import (
    REPLY_EMPTY,
    REPLY_JSON_PARSE,
    REPLY_SCHEMA_VALIDATE,
    TRANSPORT_HTTP_STATUS,
    TRANSPORT_NETWORK,
    TRANSPORT_TIMEOUT,
    ContentBlockedError,
    ModelReplyError,
)
from narrator.modules.llm.schemas import DeepDiveReply, ModelResponse

_TOKEN_REDACTION_RE = re.compile(r"\b(?:sk-|AIza)[A-Za-z0-9_\-]{8,}\b")
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def sanitize_raw_snippet(raw: object, max_len: int = 200) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        try:
            text = json.dumps(raw, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(raw)
    else:
        text = str(raw)
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")
    text = _TOKEN_REDACTION_RE.sub("[REDACTED_KEY]", text)
    text = " ".join(text.split())
    if not text:
        return None
    return text[:max_len]


def extract_json_fragment(raw_text: str) -> str | None:
    if not raw_text:
        return None
    fenced = _FENCED_JSON_RE.search(raw_text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()
    left = raw_text.find("{")
    right = raw_text.rfind("}")
    if left == -1 or right == -1 or right <= left:
        return None
    return raw_text[left : right + 1].strip()


def transport_error_kind(exc: Exception) -> str:
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return TRANSPORT_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return TRANSPORT_HTTP_STATUS
    return TRANSPORT_NETWORK


def extract_candidate_text(response: dict) -> str:
    """Pull the first candidate's text out of a proxy response body."""
    if not isinstance(response, dict):
        raise ModelReplyError(
            "model response is not an object",
            error_kind=REPLY_EMPTY,
            raw_snippet=sanitize_raw_snippet(response),
        )
    candidates = response.get("candidates")
    if isinstance(candidates, list) and candidates:
        first = candidates[0] if isinstance(candidates[0], dict) else {}
        parts = (first.get("content") or {}).get("parts") or []
        if parts and isinstance(parts[0], dict):
            text = parts[0].get("text")
            if isinstance(text, str) and text:
                return text

    feedback = response.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        ratings = feedback.get("safetyRatings") or []
        details = ", ".join(
            f"{rating.get('category')}: {rating.get('probability')}" for rating in ratings if isinstance(rating, dict)
        )
        raise ContentBlockedError(str(feedback["blockReason"]), details=details or None)

    raise ModelReplyError(
        "no valid candidate or text found in model response",
        error_kind=REPLY_EMPTY,
        raw_snippet=sanitize_raw_snippet(response),
    )


def decode_reply_json(raw_text: str) -> object:
    """json.loads with recovery from a fenced block, then from the outermost braces."""
    snippet = sanitize_raw_snippet(raw_text)
    text = str(raw_text or "").strip()
    if not text:
        raise ModelReplyError("model reply is empty", error_kind=REPLY_EMPTY, raw_snippet=snippet)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        fragment = extract_json_fragment(text)
        if not fragment:
            raise ModelReplyError(
                f"model reply json parse error: {exc}",
                error_kind=REPLY_JSON_PARSE,
                raw_snippet=snippet,
            ) from exc
        try:
            return json.loads(fragment)
        except json.JSONDecodeError as fragment_exc:
            raise ModelReplyError(
                f"model reply json parse error: {fragment_exc}",
                error_kind=REPLY_JSON_PARSE,
                raw_snippet=snippet,
            ) from fragment_exc


@dataclass(frozen=True)
class ReplyOk:
    response: ModelResponse
    payload: dict


@dataclass(frozen=True)
class ReplyErr:
    error: ModelReplyError


def _schema_error(exc: ValidationError, payload: object) -> ModelReplyError:
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return ModelReplyError(
        f"model reply schema validate error at {loc}: {first.get('msg', 'invalid')}",
        error_kind=REPLY_SCHEMA_VALIDATE,
        raw_snippet=sanitize_raw_snippet(payload),
    )


def parse_model_reply(raw: object) -> ReplyOk | ReplyErr:
    """Single validation boundary for narrative turn replies; never raises ModelReplyError."""
    try:
        payload = decode_reply_json(raw) if isinstance(raw, str) else raw
    except ModelReplyError as exc:
        return ReplyErr(exc)
    if not isinstance(payload, dict):
        return ReplyErr(
            ModelReplyError(
                "model reply must be a json object",
                error_kind=REPLY_SCHEMA_VALIDATE,
                raw_snippet=sanitize_raw_snippet(payload),
            )
        )
    try:
        response = ModelResponse.model_validate(payload)
    except ValidationError as exc:
        return ReplyErr(_schema_error(exc, payload))
    return ReplyOk(response=response, payload=payload)


def parse_deep_dive_reply(raw: object) -> DeepDiveReply:
    payload = decode_reply_json(raw) if isinstance(raw, str) else raw
    try:
        return DeepDiveReply.model_validate(payload)
    except ValidationError as exc:
        raise _schema_error(exc, payload) from exc
