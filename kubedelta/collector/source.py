"""Cluster capability used by the watch supervisor and its loops.

Two operations are needed from the API server: listing the resource kinds it
serves (discovery), and opening a cluster-wide watch stream for one kind.
``ClusterSource`` is the seam tests replace; ``KubernetesSource`` implements it
on kubernetes-asyncio using plain JSON, since the watched kinds are only
known at runtime and no typed model applies to all of them.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from kubedelta.models.resources import ResourceKind

if TYPE_CHECKING:
    from kubernetes_asyncio.client import ApiClient

_log = structlog.get_logger(component="collector.source")

RawEvent = tuple[str, Any]


@dataclass(frozen=True)
class APIResourceGroup:
    """One group-version entry of the discovery document."""

    group_version: str
    resources: tuple[str, ...] = field(default_factory=tuple)


class ClusterSource(Protocol):
    """Discovery and watch streams, as consumed by the collector."""

    async def discover(self) -> list[APIResourceGroup]: ...

    async def open_stream(
        self,
        kind: ResourceKind,
        resource_version: str | None = None,
    ) -> AsyncIterator[RawEvent]: ...


class KubernetesSource:
    """ClusterSource backed by a kubernetes-asyncio ``ApiClient``.

    The client must already be configured (in-cluster or kubeconfig).
    """

    def __init__(self, api_client: ApiClient) -> None:
        self._api = api_client

    async def _request(self, path: str, query: list[tuple[str, str]] | None = None) -> Any:
        # Raw responses: kubernetes-asyncio raises ApiException on non-2xx.
        return await self._api.call_api(
            path,
            "GET",
            query_params=query or [],
            header_params={"Accept": "application/json"},
            auth_settings=["BearerToken"],
            _preload_content=False,
            _return_http_data_only=True,
        )

    async def _get_json(self, path: str) -> dict[str, Any]:
        resp = await self._request(path)
        try:
            return await resp.json()
        finally:
            resp.release()

    async def discover(self) -> list[APIResourceGroup]:
        """Return the preferred version of every served API group.

        Sub-resources (``pods/log``) and kinds that cannot be watched are left
        out.
        """
        group_versions: list[str] = []

        core = await self._get_json("/api")
        if core.get("versions"):
            group_versions.append(core["versions"][0])

        groups = await self._get_json("/apis")
        for group in groups.get("groups", []):
            preferred = (group.get("preferredVersion") or {}).get("groupVersion")
            if preferred:
                group_versions.append(preferred)

        discovered: list[APIResourceGroup] = []
        for gv in group_versions:
            path = f"/api/{gv}" if "/" not in gv else f"/apis/{gv}"
            listing = await self._get_json(path)
            names = tuple(
                res["name"]
                for res in listing.get("resources", [])
                if "/" not in res.get("name", "/") and "watch" in res.get("verbs", [])
            )
            discovered.append(APIResourceGroup(group_version=listing.get("groupVersion", gv), resources=names))

        _log.debug("discovery_completed", group_versions=len(discovered))
        return discovered

    async def open_stream(
        self,
        kind: ResourceKind,
        resource_version: str | None = None,
    ) -> AsyncIterator[RawEvent]:
        """Open an all-namespaces watch on *kind*.

        The request is issued before this coroutine returns, so a refused
        watch surfaces here rather than on the first iteration.
        """
        query = [("watch", "true"), ("allowWatchBookmarks", "true")]
        if resource_version:
            query.append(("resourceVersion", resource_version))
        resp = await self._request(kind.list_path, query)
        return _iter_events(resp)


async def _iter_events(resp: Any) -> AsyncIterator[RawEvent]:
    """Decode newline-delimited watch events until the server closes the stream."""
    try:
        async for line in resp.content:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as exc:
                _log.debug("watch_line_undecodable", error=str(exc), size=len(line))
                continue
            yield event.get("type", ""), event.get("object")
    finally:
        resp.release()
