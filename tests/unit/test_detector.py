"""Tests for ChangeDetector notification policy and record dispatch."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import AsyncMock

import pytest

from kubedelta.cache.object_cache import ObjectCache
from kubedelta.ledger.detector import ChangeDetector, MalformedObjectError, object_identity
from kubedelta.ledger.diff import SerializationError
from kubedelta.models.events import ChangeRecord, WatchEventType
from kubedelta.models.resources import ResourceKind

_DEPLOYMENTS = ResourceKind("apps", "v1", "deployments")
_KEY = "default/deployments/web"


def _deployment(replicas: int = 1, rv: str = "1") -> dict[str, Any]:
    return {
        "metadata": {"name": "web", "namespace": "default", "resourceVersion": rv},
        "spec": {"replicas": replicas},
    }


def _make_detector(
    ack: bool | None = True,
    send_enabled: bool = True,
    api_key: str = "key-1",
) -> tuple[ChangeDetector, ObjectCache, AsyncMock]:
    cache = ObjectCache()
    sink = AsyncMock()
    sink.send.return_value = ack
    detector = ChangeDetector(cache, sink=sink, api_key=api_key, external_send_enabled=send_enabled)
    return detector, cache, sink


# ---------------------------------------------------------------------------
# object_identity
# ---------------------------------------------------------------------------


class TestObjectIdentity:
    def test_namespaced(self) -> None:
        assert object_identity(_deployment()) == ("default", "web")

    def test_cluster_scoped(self) -> None:
        assert object_identity({"metadata": {"name": "admin"}}) == ("", "admin")

    @pytest.mark.parametrize(
        "obj",
        [None, "text", [], {}, {"metadata": None}, {"metadata": {"namespace": "x"}}, {"metadata": {"name": ""}}],
    )
    def test_malformed(self, obj: Any) -> None:
        with pytest.raises(MalformedObjectError):
            object_identity(obj)


# ---------------------------------------------------------------------------
# Event policy
# ---------------------------------------------------------------------------


class TestAdded:
    async def test_stores_snapshot_and_never_emits(self) -> None:
        detector, cache, sink = _make_detector()
        assert await detector.process(_DEPLOYMENTS, WatchEventType.ADDED, _deployment()) is None
        assert cache.get(_KEY) == (_deployment(), True)
        sink.send.assert_not_awaited()

    async def test_idempotent(self) -> None:
        detector, cache, _ = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment())
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment())
        assert cache.keys() == [_KEY]
        assert cache.get(_KEY) == (_deployment(), True)

    async def test_snapshot_is_a_copy(self) -> None:
        detector, cache, _ = _make_detector()
        obj = _deployment()
        await detector.process(_DEPLOYMENTS, "ADDED", obj)
        obj["spec"]["replicas"] = 99
        snap, _ = cache.get(_KEY)
        assert snap is not None
        assert snap["spec"] == {"replicas": 1}


class TestModified:
    async def test_without_baseline_is_ignored(self) -> None:
        detector, cache, sink = _make_detector()
        assert await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment()) is None
        assert _KEY not in cache
        sink.send.assert_not_awaited()

    async def test_change_builds_and_sends_record(self) -> None:
        detector, cache, sink = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(replicas=1))
        record = await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=3, rv="2"))

        assert record == ChangeRecord(
            namespace="default",
            name="web",
            event_type="MODIFIED",
            changes={"/spec/replicas": {"old": 1, "new": 3}},
            api_key="key-1",
        )
        sink.send.assert_awaited_once_with(record)
        assert cache.get(_KEY)[0] == _deployment(replicas=3, rv="2")

    async def test_metadata_only_change_updates_cache_without_record(self) -> None:
        detector, cache, sink = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(rv="1"))
        assert await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(rv="2")) is None
        sink.send.assert_not_awaited()
        assert cache.get(_KEY)[0] == _deployment(rv="2")

    async def test_successive_changes_diff_against_latest(self) -> None:
        detector, _, sink = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(replicas=1))
        await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=2))
        record = await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=5))
        assert record is not None
        assert record.changes == {"/spec/replicas": {"old": 2, "new": 5}}
        assert sink.send.await_count == 2

    async def test_send_disabled_still_returns_record(self) -> None:
        detector, _, sink = _make_detector(send_enabled=False)
        assert not detector.send_enabled
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(replicas=1))
        record = await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=2))
        assert record is not None
        sink.send.assert_not_awaited()

    async def test_no_sink_disables_send(self) -> None:
        detector = ChangeDetector(ObjectCache(), sink=None)
        assert not detector.send_enabled
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(replicas=1))
        assert await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=2)) is not None

    async def test_failed_send_does_not_raise(self) -> None:
        detector, _, sink = _make_detector(ack=None)
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment(replicas=1))
        record = await detector.process(_DEPLOYMENTS, "MODIFIED", _deployment(replicas=2))
        assert record is not None
        sink.send.assert_awaited_once()

    async def test_unserializable_object_raises_and_keeps_prior(self) -> None:
        detector, cache, _ = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment())
        bad = copy.deepcopy(_deployment())
        bad["spec"]["replicas"] = object()
        with pytest.raises(SerializationError):
            await detector.process(_DEPLOYMENTS, "MODIFIED", bad)
        assert cache.get(_KEY)[0] == _deployment()


class TestDeleted:
    async def test_removes_snapshot(self) -> None:
        detector, cache, sink = _make_detector()
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment())
        assert await detector.process(_DEPLOYMENTS, "DELETED", _deployment()) is None
        assert _KEY not in cache
        sink.send.assert_not_awaited()

    async def test_deleted_unknown_is_noop(self) -> None:
        detector, cache, _ = _make_detector()
        assert await detector.process(_DEPLOYMENTS, "DELETED", _deployment()) is None
        assert len(cache) == 0


class TestOtherEvents:
    async def test_bookmark_ignored_without_identity(self) -> None:
        detector, cache, _ = _make_detector()
        assert await detector.process(_DEPLOYMENTS, "BOOKMARK", {"metadata": {"resourceVersion": "9"}}) is None
        assert len(cache) == 0

    async def test_unknown_event_type_raises(self) -> None:
        detector, _, _ = _make_detector()
        with pytest.raises(ValueError):
            await detector.process(_DEPLOYMENTS, "SYNC", _deployment())

    async def test_malformed_object_raises(self) -> None:
        detector, _, _ = _make_detector()
        with pytest.raises(MalformedObjectError):
            await detector.process(_DEPLOYMENTS, "ADDED", {"spec": {}})

    async def test_kinds_keyed_separately(self) -> None:
        detector, cache, _ = _make_detector()
        svc = ResourceKind("", "v1", "services")
        await detector.process(_DEPLOYMENTS, "ADDED", _deployment())
        await detector.process(svc, "ADDED", _deployment())
        assert sorted(cache.keys()) == ["default/deployments/web", "default/services/web"]
