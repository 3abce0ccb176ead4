"""relayq processing driver."""
from relayq.processing.processor import PassResult, QueueProcessor

__all__ = [
    "PassResult",
    "QueueProcessor",
]
