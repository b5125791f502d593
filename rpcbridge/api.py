"""Route registry and dispatcher.

Routes are registered while the :class:`Api` is being built. The first
call to :meth:`Api.handle` (or an explicit :meth:`Api.seal`) freezes the
registry; later registrations raise :class:`RuntimeError`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from opentelemetry import trace

from .config import Settings, load_settings, validate_settings
from .errors import ApiError, RouteNotFound, to_api_error
from .handler import ResolvedHandler, resolve_handler
from .http import Request, Response
from .metrics import observe
from .schema import SchemaNode

_LOGGER = logging.getLogger(__name__)
_TRACER = trace.get_tracer(__name__)

Handler = Callable[..., Any]


@dataclass(frozen=True)
class RouteEntry:
    """A registered route; immutable once created."""

    path: str
    method: str
    description: str
    handler: ResolvedHandler


@dataclass(frozen=True)
class RouteInfo:
    """Public description of a route for client generation."""

    name: str
    method: str
    description: str
    request_type: SchemaNode
    response_type: SchemaNode

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "method": self.method,
            "request_type": self.request_type.to_json(),
            "response_type": self.response_type.to_json(),
        }


class RouteBuilder:
    """Collect a description and then a handler for one route."""

    def __init__(self, api: "Api", path: str) -> None:
        self._api = api
        self._path = path
        self._description = ""

    def description(self, text: str) -> "RouteBuilder":
        self._description = text
        return self

    def handler(self, func: Handler) -> Handler:
        """Register *func*; until this runs the route does not exist."""
        self._api._register(self._path, self._description, func)
        return func


class Api:
    """Map ``(method, path)`` pairs to resolved handlers and dispatch requests.

    Without explicit *settings* the ``RPCBRIDGE_*`` environment variables apply.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        *,
        max_body_size: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or load_settings()
        if max_body_size is not None:
            settings = Settings(settings.base_path, max_body_size, settings.log_level)
        validate_settings(settings)
        self.settings = settings
        logging.getLogger("rpcbridge").setLevel(settings.log_level.upper())
        self.base_path = (settings.base_path if base_path is None else base_path).strip("/")
        self.max_body_size = settings.max_body_size
        self._routes: Dict[Tuple[str, str], RouteEntry] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def routes(self) -> List[RouteEntry]:
        return list(self._routes.values())

    def add(self, path: str) -> RouteBuilder:
        """Start registering a route under *path*."""
        return RouteBuilder(self, path)

    def route(self, path: str, *, description: str = "") -> Callable[[Handler], Handler]:
        """Decorator form of ``api.add(path).description(...).handler(func)``."""

        def decorator(func: Handler) -> Handler:
            return self.add(path).description(description).handler(func)

        return decorator

    def _register(self, path: str, description: str, func: Handler) -> None:
        if self._sealed:
            raise RuntimeError("Cannot register routes after the API has been sealed")
        resolved = resolve_handler(func, max_body_size=self.max_body_size)
        key = (resolved.method, path.strip("/"))
        if key in self._routes:
            _LOGGER.warning("Route %s %s registered twice; keeping the latest", *key)
        self._routes[key] = RouteEntry(key[1], resolved.method, description, resolved)
        _LOGGER.debug("Registered %s /%s -> %s", resolved.method, key[1], resolved.name)

    def seal(self) -> "Api":
        """End the registration phase."""
        if not self._sealed:
            self._sealed = True
            _LOGGER.info("API sealed with %d route(s)", len(self._routes))
        return self

    def _route_path(self, path: str) -> Optional[str]:
        trimmed = path.strip("/")
        if not self.base_path:
            return trimmed
        if trimmed == self.base_path:
            return ""
        if trimmed.startswith(self.base_path + "/"):
            return trimmed[len(self.base_path) + 1:].strip("/")
        return None

    def match(self, request: Request) -> Optional[RouteEntry]:
        """Return the route *request* would be dispatched to, if any."""
        tail = self._route_path(request.path)
        if tail is None:
            return None
        return self._routes.get((request.method, tail))

    async def handle(self, request: Request) -> Response:
        """Dispatch *request*.

        Raises
        ------
        RouteNotFound
            If no route matches; the original request is attached.
        ApiError
            If the matched route failed.
        """

        self.seal()
        entry = self.match(request)
        if entry is None:
            raise RouteNotFound(request)
        start = time.perf_counter()
        code = 500
        with _TRACER.start_as_current_span("rpcbridge.handle") as span:
            span.set_attribute("rpcbridge.route", entry.path)
            span.set_attribute("http.request.method", entry.method)
            try:
                response = await entry.handler(request)
                code = response.status_code
                return response
            except ApiError as exc:
                code = exc.code
                _LOGGER.info("%s /%s failed: %s", entry.method, entry.path, exc)
                raise
            except Exception as exc:
                error = to_api_error(exc)
                code = error.code
                raise error from exc
            finally:
                span.set_attribute("http.response.status_code", code)
                observe(entry.path, entry.method, code, time.perf_counter() - start)

    def info(self) -> List[RouteInfo]:
        """Describe every route, sorted by name."""
        infos = [
            RouteInfo(
                name=entry.path,
                method=entry.method,
                description=entry.description,
                request_type=entry.handler.request_type,
                response_type=entry.handler.response_type,
            )
            for entry in self._routes.values()
        ]
        infos.sort(key=lambda info: (info.name, info.method))
        return infos


__all__ = ["Api", "RouteBuilder", "RouteEntry", "RouteInfo"]
