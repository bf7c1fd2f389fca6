"""Backend selection by name."""

from typing import Any

from ..settings import Backend, parse_backend
from .adapters import InProcessModelAdapter, MockAdapter, RemoteAPIAdapter
from .base import BackendAdapter


def select_adapter(backend: "str | Backend", **config: Any) -> BackendAdapter:
    """Create the adapter for a backend.

    This factory function hides which adapter class serves which backend.
    It keeps no state of its own; the local backend shares its loaded
    model through the process-wide runtime.

    Args:
        backend: Backend identifier ('api', 'local', 'mock'; 'browser' and
            'browser-model' are accepted for 'local')
        **config: Adapter-specific configuration
            For api:
                - client: httpx.AsyncClient | None
                - timeout: httpx.Timeout | float | None
            For local:
                - runtime: LocalModelRuntime | None
            For mock:
                - initial_delay, min_delay, max_delay: float
                - rng: random.Random | None

    Returns:
        Initialized backend adapter

    Raises:
        ValueError: If the backend is not supported

    Examples:
        >>> adapter = select_adapter("mock", initial_delay=0)
        >>> adapter = select_adapter(Backend.API)
    """
    kind = parse_backend(backend)

    if kind is Backend.API:
        return RemoteAPIAdapter(**config)

    if kind is Backend.LOCAL:
        return InProcessModelAdapter(**config)

    return MockAdapter(**config)
