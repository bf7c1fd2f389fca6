from .local import InProcessModelAdapter, LocalModelRuntime, process_runtime
from .mock import MockAdapter
from .remote import RemoteAPIAdapter

__all__ = [
    "InProcessModelAdapter",
    "LocalModelRuntime",
    "MockAdapter",
    "RemoteAPIAdapter",
    "process_runtime",
]
