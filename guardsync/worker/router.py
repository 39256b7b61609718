"""
Request router - classifies an intercepted fetch and dispatches it to one strategy.
"""

from typing import Awaitable, Callable, Dict, List, Optional

from ..cache.types import Request, Response, ResourceClass
from ..core.config import API_PREFIXES

Handler = Callable[[Request], Awaitable[Response]]


class RequestRouter:
    """Pure classifier plus dispatcher; owns no state beyond its handler table."""

    def __init__(self, api_prefixes: Optional[List[str]] = None):
        self.api_prefixes = api_prefixes or API_PREFIXES
        self._handlers: Dict[ResourceClass, Handler] = {}
        self._mutation_handler: Optional[Handler] = None

    def register(self, resource_class: ResourceClass, handler: Handler):
        """Attach the strategy for a resource class (UNKNOWN is the pass-through)."""
        self._handlers[resource_class] = handler

    def register_mutation_handler(self, handler: Handler):
        """Attach the handler every non-GET request goes to."""
        self._mutation_handler = handler

    def is_api_path(self, path: str) -> bool:
        for prefix in self.api_prefixes:
            bare = prefix.rstrip("/")
            if path == bare or path.startswith(bare + "/"):
                return True
        return False

    def classify(self, request: Request) -> ResourceClass:
        """First match wins: API prefix, then navigation mode, then resource."""
        try:
            path = request.path
        except ValueError:
            return ResourceClass.UNKNOWN

        if self.is_api_path(path):
            return ResourceClass.API
        if request.mode == "navigate":
            return ResourceClass.NAVIGATION
        return ResourceClass.RESOURCE

    async def dispatch(self, request: Request) -> Response:
        resource_class = self.classify(request)

        if resource_class is ResourceClass.UNKNOWN:
            handler = self._handlers.get(ResourceClass.UNKNOWN)
        elif request.method != "GET":
            handler = self._mutation_handler
        else:
            handler = self._handlers.get(resource_class)

        if handler is None:
            raise LookupError(f"No handler registered for {request.method} {resource_class.value}")
        return await handler(request)
