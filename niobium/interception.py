"""
Niobium - Route Interception
============================
Discovers the site map of a FastAPI application without touching its code.

While the host application loads, three entry points are swapped in place:

- ``fastapi.FastAPI`` builds the real app and wraps it in an ``InterceptedApp``
  that records every GET route and static mount registered on it.
- ``StaticFiles`` (fastapi and starlette) becomes ``TrackedStaticFiles``, a real
  subclass that remembers the absolute directory it serves.
- ``uvicorn.run`` becomes the listen signal: it records the app and returns
  without serving.

Everything else an app does passes straight through to the real object.

Usage:
    from niobium.interception import load_app

    discovered = load_app("app.py")          # script calling uvicorn.run(app)
    discovered = load_app("mysite.main:app") # import string, like uvicorn
"""

from __future__ import annotations

import contextlib
import importlib
import logging
import runpy
import sys
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

import fastapi
import fastapi.staticfiles
import starlette.staticfiles
import uvicorn
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from niobium.exceptions import AppLoadError
from niobium.models import DiscoveredApp, StaticMount

logger = logging.getLogger(__name__)


class TrackedStaticFiles(StaticFiles):
    """``StaticFiles`` carrying the resolved directory it was created with."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.mount_root: Path | None = Path(self.directory).resolve() if self.directory is not None else None


def _join(prefix: str, path: str) -> str:
    if not prefix:
        return path
    return (prefix.rstrip("/") + path) or "/"


def _serves_get(methods: Any) -> bool:
    # Starlette and FastAPI both default to GET when no methods are given
    if methods is None:
        return True
    return "GET" in {str(m).upper() for m in methods}


class RouteRecorder:
    """Registrations observed on one application."""

    def __init__(self) -> None:
        self.dynamic_routes: list[str] = []
        # StaticMount, or (prefix, recorder) for a mounted sub-application
        self.mounts: list[StaticMount | tuple[str, RouteRecorder]] = []

    def flatten(self, prefix: str = "") -> tuple[list[str], list[StaticMount]]:
        """Return dynamic routes and static mounts with sub-applications inlined."""
        routes = [_join(prefix, path) for path in self.dynamic_routes]
        mounts: list[StaticMount] = []
        for entry in self.mounts:
            if isinstance(entry, StaticMount):
                mounts.append(StaticMount(_join(prefix, entry.prefix), entry.directory))
                continue
            sub_prefix, child = entry
            child_routes, child_mounts = child.flatten(_join(prefix, sub_prefix))
            routes.extend(child_routes)
            mounts.extend(child_mounts)
        return routes, mounts


class _RecordingProxy:
    """
    Forwards everything to ``_target`` and records what it registers.

    Attribute reads, writes and deletes go to the wrapped object. Only the
    registration methods below are overridden, and each of them forwards its
    arguments unchanged.
    """

    def __init__(self, target: Any, recorder: RouteRecorder | None = None) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_recorder", recorder or RouteRecorder())

    def __getattr__(self, name: str) -> Any:
        if name in ("_target", "_recorder"):
            raise AttributeError(name)
        return getattr(self._target, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    def __delattr__(self, name: str) -> None:
        delattr(self._target, name)

    # -- route registration ------------------------------------------------

    def get(self, path: str, *args: Any, **kwargs: Any) -> Callable:
        return self._recording(path, self._target.get(path, *args, **kwargs))

    def api_route(self, path: str, *args: Any, **kwargs: Any) -> Callable:
        decorator = self._target.api_route(path, *args, **kwargs)
        if not _serves_get(kwargs.get("methods")):
            return decorator
        return self._recording(path, decorator)

    def add_api_route(self, path: str, endpoint: Callable, *args: Any, **kwargs: Any) -> Any:
        result = self._target.add_api_route(path, endpoint, *args, **kwargs)
        if endpoint is not None and _serves_get(kwargs.get("methods")):
            self._recorder.dynamic_routes.append(path)
        return result

    def add_route(self, path: str, route: Callable, *args: Any, **kwargs: Any) -> Any:
        result = self._target.add_route(path, route, *args, **kwargs)
        methods = args[0] if args else kwargs.get("methods")
        if route is not None and _serves_get(methods):
            self._recorder.dynamic_routes.append(path)
        return result

    def include_router(self, router: Any, *args: Any, **kwargs: Any) -> Any:
        result = self._target.include_router(router, *args, **kwargs)
        self._record_routes(getattr(router, "routes", ()), kwargs.get("prefix", ""))
        return result

    # -- static mounts -----------------------------------------------------

    def mount(self, path: Any, app: Any = None, name: str | None = None) -> Any:
        if app is None and not isinstance(path, str):
            # mount(static_files) serves the directory at the root
            path, app = "", path
        self._record_mount(path, app)
        return self._target.mount(path, app, name=name)

    def _record_mount(self, path: str, app: Any) -> None:
        if isinstance(app, TrackedStaticFiles) and app.mount_root is not None:
            self._recorder.mounts.append(StaticMount(path or "/", app.mount_root))
        elif isinstance(app, InterceptedApp):
            self._recorder.mounts.append((path, app._recorder))

    def _record_routes(self, routes: Iterable[Any], prefix: str = "") -> None:
        """Record route objects built outside the registration methods."""
        for route in routes:
            if isinstance(route, Route):
                if route.methods and "GET" in route.methods:
                    self._recorder.dynamic_routes.append(_join(prefix, route.path))
            elif isinstance(route, Mount):
                self._record_mount(_join(prefix, route.path), route.app)

    def _recording(self, path: str, decorator: Callable) -> Callable:
        def register(endpoint: Callable) -> Any:
            self._recorder.dynamic_routes.append(path)
            return decorator(endpoint)

        return register


class InterceptedApp(_RecordingProxy):
    """
    Transparent proxy around a FastAPI application.

    The proxy is itself a valid ASGI callable, and ``app.router`` is wrapped
    too so registrations made directly on the router are recorded.
    """

    def __getattr__(self, name: str) -> Any:
        if name == "router":
            return _RecordingProxy(self._target.router, self._recorder)
        return super().__getattr__(name)

    def __repr__(self) -> str:
        return f"InterceptedApp({self._target!r})"

    async def __call__(self, scope, receive, send) -> None:
        await self._target(scope, receive, send)


# =============================================================================
# Entry point swapping
# =============================================================================


class _ListenSignal:
    """Stand-in for ``uvicorn.run``: remembers the app instead of serving it."""

    def __init__(self) -> None:
        self.app: Any = None

    def __call__(self, app: Any, *args: Any, **kwargs: Any) -> None:
        if isinstance(app, str):
            raise AppLoadError(
                "uvicorn.run() received an import string; pass the application object",
                target=app,
            )
        if self.app is None:
            self.app = app
            logger.debug("Host application started listening")


class _InterceptingMeta(type):
    # isinstance(app, FastAPI) in host code sees through the proxy
    def __instancecheck__(cls, instance: Any) -> bool:
        if isinstance(instance, InterceptedApp):
            instance = instance._target
        return super().__instancecheck__(instance)


def _intercepting_class(real: type) -> type:
    """Subclass of ``real`` whose construction returns a recording proxy.

    Host code can subclass it and run isinstance checks against it like the
    real class. The wrapped object is an instance of the class that was called.
    """

    class Intercepting(real, metaclass=_InterceptingMeta):
        def __new__(cls, *args: Any, **kwargs: Any) -> Any:
            app = super().__new__(cls)
            app.__init__(*args, **kwargs)
            proxy = InterceptedApp(app)
            proxy._record_routes(kwargs.get("routes") or ())
            return proxy

    Intercepting.__name__ = real.__name__
    Intercepting.__qualname__ = real.__qualname__
    Intercepting.__module__ = real.__module__
    Intercepting.__doc__ = real.__doc__
    return Intercepting


@contextlib.contextmanager
def _swapped(owner: Any, name: str, value: Any) -> Iterator[None]:
    original = getattr(owner, name)
    setattr(owner, name, value)
    try:
        yield
    finally:
        setattr(owner, name, original)


@contextlib.contextmanager
def intercepting() -> Iterator[_ListenSignal]:
    """Swap the framework entry points for the duration of the block."""
    listener = _ListenSignal()
    with contextlib.ExitStack() as stack:
        stack.enter_context(_swapped(fastapi, "FastAPI", _intercepting_class(fastapi.FastAPI)))
        stack.enter_context(_swapped(fastapi.staticfiles, "StaticFiles", TrackedStaticFiles))
        stack.enter_context(_swapped(starlette.staticfiles, "StaticFiles", TrackedStaticFiles))
        stack.enter_context(_swapped(uvicorn, "run", listener))
        yield listener


@contextlib.contextmanager
def _on_sys_path(directory: Path) -> Iterator[None]:
    entry = str(directory)
    added = entry not in sys.path
    if added:
        sys.path.insert(0, entry)
    try:
        yield
    finally:
        if added and entry in sys.path:
            sys.path.remove(entry)


# =============================================================================
# Loading
# =============================================================================


def _is_import_string(target: str) -> bool:
    return ":" in target and not target.endswith(".py") and not Path(target).exists()


def _run_script(target: str) -> Any:
    script = Path(target).resolve()
    if not script.is_file():
        raise AppLoadError("Application script not found", target=target)

    with intercepting() as listener, _on_sys_path(script.parent):
        runpy.run_path(str(script), run_name="__main__")

    if listener.app is None:
        raise AppLoadError("Application never called uvicorn.run()", target=target)
    return listener.app


def _import_app(target: str) -> Any:
    module_name, _, attr_path = target.partition(":")
    if not module_name or not attr_path:
        raise AppLoadError("Import string must look like 'module:attribute'", target=target)

    with intercepting(), _on_sys_path(Path.cwd()):
        # Re-import so registrations run under interception
        sys.modules.pop(module_name, None)
        module = importlib.import_module(module_name)

    app: Any = module
    try:
        for attr in attr_path.split("."):
            app = getattr(app, attr)
    except AttributeError as exc:
        raise AppLoadError(f"Attribute {attr_path!r} not found in module {module_name!r}", target=target) from exc
    return app


def load_app(target: str) -> DiscoveredApp:
    """
    Load the host application under interception.

    Args:
        target: Path to a script that calls ``uvicorn.run(app)``, or a
            ``module:attribute`` import string.

    Returns:
        The unwrapped application with its dynamic routes and static mounts.

    Raises:
        AppLoadError: If the app cannot be located or was not built with FastAPI.
            Exceptions raised by the host code itself propagate unchanged.
    """
    app = _import_app(target) if _is_import_string(target) else _run_script(target)

    if not isinstance(app, InterceptedApp):
        raise AppLoadError("Application was not created through fastapi.FastAPI", target=target)

    routes, mounts = app._recorder.flatten()
    logger.info(
        "Host application loaded",
        extra={"dynamic_route_count": len(routes), "static_mount_count": len(mounts)},
    )
    return DiscoveredApp(app=app._target, dynamic_routes=tuple(routes), static_mounts=tuple(mounts))
