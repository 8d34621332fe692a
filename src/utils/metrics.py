"""Prometheus metrics registration for the realtime chat layer.

All metric objects are defined at import time against the default registry
and exposed by the ``/metrics`` mount in ``src.main``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

chat_connections_active = Gauge(
    "chat_connections_active",
    "Open realtime chat connections (registered or not)",
)
chat_users_online = Gauge(
    "chat_users_online",
    "Users online as of the last presence snapshot",
)
chat_events_total = Counter(
    "chat_events_total",
    "Inbound chat events by name and handling status",
    ["event", "status"],
)
chat_messages_total = Counter(
    "chat_messages_total",
    "Relayed chat messages by outcome",
    ["outcome"],  # delivered|pending
)
chat_presence_broadcasts_total = Counter(
    "chat_presence_broadcasts_total",
    "Presence announcements sent",
    ["kind"],  # online|offline|snapshot
)
chat_send_failures_total = Counter(
    "chat_send_failures_total",
    "Frames lost because the socket write failed",
)
