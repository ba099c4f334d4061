"""Outbound event sink and webhook notifier."""

from agentflow.outbound.sink import (
    HttpEventSink,
    HttpWebhookNotifier,
    NullEventSink,
    NullWebhookNotifier,
    OutboundEventSink,
    WebhookNotifier,
    build_outbound,
    sign_payload,
)

__all__ = [
    "HttpEventSink",
    "HttpWebhookNotifier",
    "NullEventSink",
    "NullWebhookNotifier",
    "OutboundEventSink",
    "WebhookNotifier",
    "build_outbound",
    "sign_payload",
]
