"""Application bootstrap for kubedelta.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → cache → hub client → detector
              → watch supervisor → REST

Any failure while starting a mandatory component, and any watch loop that
fails fatally afterwards, ends the process with exit status 1; restarting it
is left to the orchestrator. Shutdown stops components in reverse order.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubedelta.collector.watcher import WatchStreamError
from kubedelta.config import load_config
from kubedelta.models.config import KubeDeltaConfig
from kubedelta.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubedelta.cache.object_cache import ObjectCache
    from kubedelta.collector.source import ClusterSource
    from kubedelta.collector.supervisor import WatchSupervisor
    from kubedelta.ledger.detector import ChangeDetector
    from kubedelta.notifications.hub import HubClient

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeDeltaApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Args:
        config: Pre-built configuration; loaded from the environment when None.
        source: Cluster capability; a kubernetes-asyncio source is built when None.
    """

    def __init__(
        self,
        config: KubeDeltaConfig | None = None,
        source: ClusterSource | None = None,
    ) -> None:
        self.config = config
        self._source = source

        self._k8s_client: object | None = None
        self._cache: ObjectCache | None = None
        self._hub: HubClient | None = None
        self._detector: ChangeDetector | None = None
        self._supervisor: WatchSupervisor | None = None
        self._rest_server: object | None = None
        self._background_tasks: list[asyncio.Task[None]] = []

        self._shutdown = asyncio.Event()
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.effective_level)
        self._log = get_logger("app")
        self._log.info("kubedelta starting", version=_kubedelta_version())

        # --- 3. Kubernetes client ----------------------------------------
        if self._source is None:
            await self._start_k8s_client()

        # --- 4. Object cache ---------------------------------------------
        self._start_cache()

        # --- 5. Hub client -----------------------------------------------
        self._start_hub()

        # --- 6. Change detector ------------------------------------------
        self._start_detector()

        # --- 7. Watch supervisor -----------------------------------------
        await self._start_supervisor()

        # --- 8. REST API -------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubedelta started")

    async def _start_k8s_client(self) -> None:
        """Initialise kubernetes-asyncio from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from kubedelta.collector.source import KubernetesSource

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            api_client = k8s_client.ApiClient()
            self._k8s_client = api_client
            self._source = KubernetesSource(api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_cache(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from kubedelta.cache import ObjectCache

        self._cache = ObjectCache(max_entries=self.config.cache.max_entries)
        self._log.info(
            "object cache started",
            max_entries=self.config.cache.max_entries or "unbounded",
        )

    def _start_hub(self) -> None:
        """Connect the hub client; failure is fatal when sending is enabled."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kubedelta.notifications import build_hub_client

            self._hub = build_hub_client(self.config.hub)
        except Exception as exc:
            raise _ComponentError("hub", exc) from exc

    def _start_detector(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._cache is not None
        from kubedelta.ledger import ChangeDetector

        self._detector = ChangeDetector(
            cache=self._cache,
            sink=self._hub,
            api_key=self.config.hub.api_key,
            external_send_enabled=self.config.hub.external_send_enabled,
        )
        self._log.info("change detector started", send_enabled=self._detector.send_enabled)

    async def _start_supervisor(self) -> None:
        """Discover resource kinds and start one watch loop per allowed kind."""
        assert self._log is not None
        assert self.config is not None
        assert self._source is not None
        assert self._detector is not None
        self._log.debug("starting watch supervisor")
        try:
            from kubedelta.collector.supervisor import WatchSupervisor

            supervisor = WatchSupervisor(self._source, self._detector, self.config.watch)
            self._supervisor = supervisor
            kinds = await supervisor.start()
            self._log.info(
                "watch supervisor started",
                kinds=len(kinds),
                restart_policy=self.config.watch.restart_policy,
            )
        except Exception as exc:
            raise _ComponentError("supervisor", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn health/status server when enabled."""
        assert self._log is not None
        assert self.config is not None
        if not self.config.api.enabled:
            self._log.info("rest api disabled (api.enabled=false)")
            return
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from kubedelta.api import build_app

            fastapi_app = build_app(
                supervisor=self._supervisor,
                cache=self._cache,
                detector=self._detector,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            # The API only reports on the pipeline; the pipeline runs without it.
            self._log.warning("rest api failed to start", error=str(exc))
            self._rest_server = None

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        self._shutdown.set()

    async def wait(self) -> None:
        """Block until shutdown is requested or a watch loop fails.

        Raises:
            WatchStreamError: a watch loop failed fatally.
        """
        assert self._supervisor is not None
        shutdown = asyncio.create_task(self._shutdown.wait(), name="shutdown-wait")
        loops = asyncio.create_task(self._supervisor.wait(), name="watch-loops")
        try:
            done, _ = await asyncio.wait({shutdown, loops}, return_when=asyncio.FIRST_COMPLETED)
            if loops in done:
                loops.result()
                # Every stream closed without error; stay up until told to stop.
                await shutdown
        finally:
            for task in (shutdown, loops):
                if not task.done():
                    task.cancel()
            await asyncio.gather(shutdown, loops, return_exceptions=True)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubedelta shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("supervisor", self._supervisor)
        await self._stop_component("hub", self._hub)
        await self._stop_k8s_client()

        log.info("kubedelta stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        if self._k8s_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._k8s_client.close()  # type: ignore[attr-defined]
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._k8s_client = None


def _kubedelta_version() -> str:
    from kubedelta import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown or a fatal error."""
    app = KubeDeltaApp()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_shutdown)

    try:
        await app.start()
        await app.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    except WatchStreamError as exc:
        log = get_logger("app")
        log.critical(
            "fatal watch error",
            resource=exc.kind.resource,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
