"""
Outbound alert delivery: composition, signing, retries and fan-out.
"""

from brokerhooks.delivery.composer import compose, serialize, summarize
from brokerhooks.delivery.engine import DeliveryEngine
from brokerhooks.delivery.fanout import FanoutCoordinator
from brokerhooks.delivery.notifier import AlertNotifier, EndpointStore
from brokerhooks.delivery.transport import HttpTransport, HttpxTransport, TransportResponse

__all__ = [
    "AlertNotifier",
    "DeliveryEngine",
    "EndpointStore",
    "FanoutCoordinator",
    "HttpTransport",
    "HttpxTransport",
    "TransportResponse",
    "compose",
    "serialize",
    "summarize",
]
