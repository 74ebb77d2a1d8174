"""
Stream message shapes for the logsSubscribe WebSocket endpoint.

Every inbound frame decodes into exactly one of a closed set of variants;
anything unrecognised becomes IgnoredMessage so the read loop never inspects
raw dicts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

LOGS_NOTIFICATION_METHOD = "logsNotification"


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SubscriptionAck:
    """Successful reply to our subscribe request; result is the subscription id."""

    request_id: Any
    subscription_id: int


@dataclass(frozen=True)
class SubscriptionFailure:
    """Error object returned for a request (protocol-level failure, not transport)."""

    request_id: Any
    code: int | None
    message: str


@dataclass(frozen=True)
class LogsNotification:
    subscription_id: int | None
    signature: str
    failed: bool
    """True when the transaction itself errored on-chain (value.err non-null)."""


@dataclass(frozen=True)
class IgnoredMessage:
    reason: str


StreamMessage = Union[SubscriptionAck, SubscriptionFailure, LogsNotification, IgnoredMessage]


def build_logs_subscribe(address: str, commitment: str, request_id: int = 1) -> dict[str, Any]:
    """logsSubscribe restricted to transactions mentioning address."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "logsSubscribe",
        "params": [
            {"mentions": [address]},
            {"commitment": commitment},
        ],
    }


def decode_stream_message(raw: str | bytes) -> StreamMessage:
    try:
        msg = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return IgnoredMessage("malformed_json")
    if not isinstance(msg, dict):
        return IgnoredMessage("not_an_object")

    method = msg.get("method")
    if method is not None:
        if method != LOGS_NOTIFICATION_METHOD:
            return IgnoredMessage(f"unexpected_method:{method}")
        return _decode_logs_notification(msg)

    if "id" in msg:
        err = msg.get("error")
        if err is not None:
            if isinstance(err, dict):
                code = err.get("code")
                return SubscriptionFailure(
                    request_id=msg.get("id"),
                    code=code if isinstance(code, int) else None,
                    message=str(err.get("message") or err),
                )
            return SubscriptionFailure(request_id=msg.get("id"), code=None, message=str(err))
        result = msg.get("result")
        # bool is an int subclass; unsubscribe replies return true/false
        if isinstance(result, int) and not isinstance(result, bool):
            return SubscriptionAck(request_id=msg.get("id"), subscription_id=result)
    return IgnoredMessage("unrecognised_shape")


def _decode_logs_notification(msg: dict[str, Any]) -> StreamMessage:
    params = msg.get("params")
    if not isinstance(params, dict):
        return IgnoredMessage("missing_params")
    result = params.get("result")
    value = result.get("value") if isinstance(result, dict) else None
    if not isinstance(value, dict):
        return IgnoredMessage("missing_value")
    signature = value.get("signature")
    if not isinstance(signature, str) or not signature:
        return IgnoredMessage("missing_signature")
    sub_id = params.get("subscription")
    return LogsNotification(
        subscription_id=sub_id if isinstance(sub_id, int) else None,
        signature=signature,
        failed=value.get("err") is not None,
    )
