"""Tests for ResourceStateStore and placeholder liveness probing."""

from __future__ import annotations

import gc
import weakref

from chatmedia.domain.models import FidelityTier, LogicalImage
from chatmedia.scheduling.state_store import ResourceStateStore, placeholder_alive


class _Placeholder:
    def __init__(self, attached=True):
        self.attached = attached

    def is_attached(self):
        return self.attached


def test_register_is_idempotent_and_refreshes_placeholder():
    store = ResourceStateStore()
    first = store.register(LogicalImage("a"), "old")
    second = store.register(LogicalImage("a"), "new")
    assert first is second
    assert second.placeholder_ref == "new"
    store.register(LogicalImage("a"))
    assert store.get("a").placeholder_ref == "new"
    assert len(store) == 1


def test_flags_and_aggregates():
    store = ResourceStateStore()
    for image_id in ("a", "b", "c"):
        store.register(LogicalImage(image_id))
    store.mark_failed("a")
    store.mark_thumbnail_loaded("a")
    store.mark_thumbnail_loaded("b")
    store.mark_full_loaded("b")
    store.mark_tier_displayed("b", FidelityTier.SMALL, provisional=True)

    assert not store.get("a").failed
    assert store.total_images == 3
    assert store.loaded_thumbnails == 2
    assert store.loaded_full_images == 1
    assert store.get("b").displayed_tier is FidelityTier.SMALL
    assert store.get("b").provisional


def test_updates_to_unknown_ids_are_ignored():
    store = ResourceStateStore()
    store.mark_failed("ghost")
    store.mark_full_loaded("ghost")
    assert "ghost" not in store
    assert not store.destroy("ghost")


def test_placeholder_alive_probe():
    assert placeholder_alive(None)
    assert placeholder_alive(_Placeholder())
    assert not placeholder_alive(_Placeholder(attached=False))

    target = _Placeholder()
    ref = weakref.ref(target)
    assert placeholder_alive(ref)
    del target
    gc.collect()
    assert not placeholder_alive(ref)


def test_collect_detached_skips_failing_probe():
    store = ResourceStateStore()
    store.register(LogicalImage("gone"), _Placeholder(attached=False))
    store.register(LogicalImage("kept"), _Placeholder())
    store.register(LogicalImage("broken"), "x")

    def _probe(ref):
        if ref == "x":
            raise RuntimeError("probe exploded")
        return ref.is_attached()

    assert store.collect_detached(_probe) == ["gone"]
    # Collection does not destroy; the scheduler does.
    assert "gone" in store
