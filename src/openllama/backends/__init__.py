from .adapters import (
    InProcessModelAdapter,
    LocalModelRuntime,
    MockAdapter,
    RemoteAPIAdapter,
    process_runtime,
)
from .base import BackendAdapter
from .bridge import FragmentBridge
from .factory import select_adapter
from .models import ErrorAnnotation, is_error_annotation

__all__ = [
    "BackendAdapter",
    "ErrorAnnotation",
    "FragmentBridge",
    "InProcessModelAdapter",
    "LocalModelRuntime",
    "MockAdapter",
    "RemoteAPIAdapter",
    "is_error_annotation",
    "process_runtime",
    "select_adapter",
]
