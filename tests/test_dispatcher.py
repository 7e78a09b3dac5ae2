"""Admission control, tier walking and failure handling in the dispatcher."""

from __future__ import annotations

import logging

from chatmedia.config import SchedulerConfig
from chatmedia.domain.models import FidelityTier, QueueName, TaskKind
from chatmedia.errors import FetchFailedError, LocatorUnavailableError
from chatmedia.errors.handler import ErrorHandler, ErrorOccurredEvent, ErrorSeverity
from chatmedia.events.media_events import TierFailedEvent, TierLoadedEvent
from chatmedia.infrastructure.services.byte_cache import MediaByteCache
from chatmedia.scheduling.simulation import SimulatedLocator
from fakes import ImmediateFetcher, sim_url


def _load_thumbnail(fetcher, image_id):
    fetcher.succeed(sim_url(image_id, "small"))
    fetcher.succeed(sim_url(image_id, "medium"))


def test_tick_never_exceeds_max_concurrent(make_scheduler, fetcher):
    scheduler = make_scheduler()
    for image_id in "abcde":
        scheduler.register_image(image_id, visible=True)

    assert scheduler.tick() == 2
    assert fetcher.open_urls == [sim_url("a", "small"), sim_url("b", "small")]
    assert scheduler.get_stats().current_loading == 2
    assert scheduler.tick() == 0

    # Walking to the medium tier keeps the same slot.
    fetcher.succeed(sim_url("a", "small"))
    assert scheduler.tick() == 0
    assert sim_url("a", "medium") in fetcher.open_urls

    fetcher.succeed(sim_url("a", "medium"))
    assert scheduler.get_stats().current_loading == 1
    assert scheduler.tick() == 1
    assert sim_url("c", "small") in fetcher.open_urls


def test_slot_freed_during_tick_is_reused_next_tick(make_scheduler):
    fetcher = ImmediateFetcher()
    scheduler = make_scheduler(fetcher=fetcher)
    for image_id in "abcde":
        scheduler.register_image(image_id, visible=True)

    assert scheduler.tick() == 2
    assert scheduler.dispatcher.started_total == 2
    assert scheduler.get_stats().loaded_thumbnails == 2
    assert scheduler.tick() == 2
    assert scheduler.tick() == 1
    assert scheduler.get_stats().loaded_thumbnails == 5


def test_visible_dispatched_before_hidden(make_scheduler, fetcher):
    scheduler = make_scheduler(config=SchedulerConfig(max_concurrent=1))
    scheduler.register_image("hidden-first")
    scheduler.register_image("seen", visible=True)

    scheduler.tick()
    assert fetcher.open_urls == [sim_url("seen", "small")]
    _load_thumbnail(fetcher, "seen")
    scheduler.tick()
    assert fetcher.open_urls == [sim_url("hidden-first", "small")]


def test_user_request_beats_ambient_work(make_scheduler, fetcher):
    scheduler = make_scheduler(config=SchedulerConfig(max_concurrent=1))
    scheduler.register_image("a", visible=True)
    scheduler.register_image("b", visible=True)
    scheduler.request_full("b")

    scheduler.tick()
    assert fetcher.open_urls == [sim_url("b", "full")]


def test_first_light_then_sharp(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.tick()

    fetcher.succeed(sim_url("a", "small"))
    assert presenter.calls[-1] == ("available", "a", FidelityTier.SMALL, True, False)
    assert presenter.state("a").provisional
    assert not scheduler.state("a").thumbnail_loaded

    fetcher.succeed(sim_url("a", "medium"))
    assert presenter.calls[-1] == ("available", "a", FidelityTier.MEDIUM, False, False)
    state = scheduler.state("a")
    assert state.thumbnail_loaded
    assert state.displayed_tier is FidelityTier.MEDIUM
    assert not state.provisional


def test_medium_failure_keeps_small_and_counts_as_loaded(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("z", visible=True)
    scheduler.tick()
    fetcher.succeed(sim_url("z", "small"))
    fetcher.fail(sim_url("z", "medium"))

    state = scheduler.state("z")
    assert state.thumbnail_loaded
    assert not state.failed
    assert state.displayed_tier is FidelityTier.SMALL
    assert not state.provisional
    assert presenter.failures("z") == [FidelityTier.MEDIUM]
    assert presenter.state("z").tier is FidelityTier.SMALL
    assert not presenter.state("z").provisional

    # No automatic retry of the medium tier.
    scheduler.on_viewport_leave("z")
    scheduler.on_viewport_enter("z")
    for _ in range(5):
        scheduler.tick()
    assert sim_url("z", "medium") not in fetcher.open_urls
    assert scheduler.get_stats().loaded_thumbnails == 1


def test_small_failure_marks_failed_and_stops_chain(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("z", visible=True)
    scheduler.tick()
    fetcher.fail(sim_url("z", "small"))

    state = scheduler.state("z")
    assert state.failed
    assert not state.thumbnail_loaded
    assert presenter.state("z").shows_failure
    assert fetcher.calls == []
    assert scheduler.get_stats().current_loading == 0
    assert not scheduler.promotions.is_armed("z")


def test_missing_credential_fails_without_fetching(make_scheduler, fetcher, presenter, bus):
    failed = []
    bus.subscribe(TierFailedEvent, failed.append)
    scheduler = make_scheduler(locator=SimulatedLocator(credential=False))
    scheduler.register_image("a", visible=True)

    scheduler.tick()

    assert fetcher.history == []
    assert scheduler.state("a").failed
    assert presenter.failures("a") == [FidelityTier.SMALL]
    assert [event.tier for event in failed] == ["small"]
    assert scheduler.get_stats().current_loading == 0


def test_fetcher_exception_is_a_failure(make_scheduler, presenter):
    class _Exploding:
        def fetch(self, url, callback):
            raise RuntimeError("socket gone")

    scheduler = make_scheduler(fetcher=_Exploding())
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    assert scheduler.state("a").failed
    assert presenter.failures("a") == [FidelityTier.SMALL]
    assert scheduler.get_stats().current_loading == 0


def test_presenter_exception_does_not_disturb_scheduling(make_scheduler, fetcher, caplog):
    class _Broken:
        def on_tier_available(self, image_id, tier, *, provisional=False, prefetch=False):
            raise RuntimeError("widget deleted")

        def on_load_failed(self, image_id, tier):
            raise RuntimeError("widget deleted")

    scheduler = make_scheduler(presenter=_Broken())
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    with caplog.at_level(logging.ERROR, logger="chatmedia"):
        fetcher.succeed(sim_url("a", "small"))
    assert "Presentation adapter failed" in caplog.text
    fetcher.succeed(sim_url("a", "medium"))
    assert scheduler.state("a").thumbnail_loaded
    assert not scheduler.state("a").failed


def test_destroyed_mid_flight_releases_slot_silently(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    scheduler.destroy_image("a")

    fetcher.succeed(sim_url("a", "small"))

    assert presenter.calls == []
    assert fetcher.calls == []
    assert scheduler.get_stats().current_loading == 0


def test_manual_load_waits_for_in_flight_thumbnail(make_scheduler, fetcher):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    assert scheduler.dispatcher.is_in_flight("a", TaskKind.THUMBNAIL)

    assert scheduler.manual_load("a", "medium")
    scheduler.tick()
    assert fetcher.history == [sim_url("a", "small")]
    assert scheduler.queues.length(QueueName.USER_REQUESTED) == 1

    _load_thumbnail(fetcher, "a")
    assert scheduler.tick() == 1
    assert fetcher.open_urls == [sim_url("a", "small")]
    assert scheduler.queues.length(QueueName.USER_REQUESTED) == 0


def _prefetch_in_flight(scheduler, fetcher, clock):
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    _load_thumbnail(fetcher, "a")
    clock.advance(5000)
    scheduler.tick()
    assert fetcher.open_urls == [sim_url("a", "full")]


def test_user_full_joins_running_prefetch(make_scheduler, fetcher, presenter, clock):
    scheduler = make_scheduler()
    _prefetch_in_flight(scheduler, fetcher, clock)

    assert scheduler.request_full("a")
    assert scheduler.tick() == 0
    assert fetcher.open_urls == [sim_url("a", "full")]
    assert scheduler.queues.length(QueueName.USER_REQUESTED) == 0

    fetcher.succeed(sim_url("a", "full"))
    assert presenter.calls[-1] == ("available", "a", FidelityTier.FULL, False, False)
    assert presenter.state("a").tier is FidelityTier.FULL
    assert scheduler.state("a").displayed_tier is FidelityTier.FULL


def test_user_full_retried_when_joined_prefetch_fails(make_scheduler, fetcher, presenter, clock):
    scheduler = make_scheduler()
    _prefetch_in_flight(scheduler, fetcher, clock)
    assert scheduler.request_full("a")
    scheduler.tick()

    fetcher.fail(sim_url("a", "full"))
    assert scheduler.queues.length(QueueName.USER_REQUESTED) == 1
    assert scheduler.tick() == 1
    assert fetcher.open_urls == [sim_url("a", "full")]

    fetcher.succeed(sim_url("a", "full"))
    assert presenter.state("a").tier is FidelityTier.FULL


def test_failed_user_full_is_not_retried(make_scheduler, fetcher):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.request_full("a")
    scheduler.tick()
    fetcher.fail(sim_url("a", "full"))

    assert scheduler.queues.length(QueueName.USER_REQUESTED) == 0
    scheduler.tick()
    assert sim_url("a", "full") not in fetcher.open_urls


def test_reregistered_image_ignores_previous_load(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("a")
    scheduler.tick()
    scheduler.destroy_image("a")
    scheduler.register_image("a", visible=True)

    assert scheduler.tick() == 1
    assert fetcher.history == [sim_url("a", "small"), sim_url("a", "small")]
    assert scheduler.dispatcher.is_in_flight("a", TaskKind.THUMBNAIL)

    # The first pending request belongs to the destroyed registration.
    fetcher.fail(sim_url("a", "small"))
    state = scheduler.state("a")
    assert not state.failed
    assert presenter.calls == []
    assert fetcher.open_urls == [sim_url("a", "small")]
    assert scheduler.dispatcher.is_in_flight("a", TaskKind.THUMBNAIL)
    assert scheduler.get_stats().current_loading == 1

    _load_thumbnail(fetcher, "a")
    assert state.thumbnail_loaded
    assert not scheduler.dispatcher.is_in_flight("a", TaskKind.THUMBNAIL)
    assert scheduler.get_stats().current_loading == 0


def test_full_may_load_while_thumbnail_in_flight(make_scheduler, fetcher):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    scheduler.request_full("a")
    scheduler.tick()
    assert fetcher.open_urls == [sim_url("a", "small"), sim_url("a", "full")]


def test_ambient_full_is_prefetch(make_scheduler, fetcher, presenter, clock):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    _load_thumbnail(fetcher, "a")
    clock.advance(5000)
    scheduler.tick()
    fetcher.succeed(sim_url("a", "full"))

    assert presenter.calls[-1] == ("available", "a", FidelityTier.FULL, False, True)
    assert presenter.state("a").tier is FidelityTier.MEDIUM
    assert presenter.state("a").full_ready
    state = scheduler.state("a")
    assert state.full_loaded
    assert state.displayed_tier is FidelityTier.MEDIUM


def test_user_full_is_displayed(make_scheduler, fetcher, presenter):
    scheduler = make_scheduler()
    scheduler.register_image("a", visible=True)
    scheduler.request_full("a")
    scheduler.tick()
    fetcher.succeed(sim_url("a", "full"))

    assert ("available", "a", FidelityTier.FULL, False, False) in presenter.calls
    assert presenter.state("a").tier is FidelityTier.FULL
    assert scheduler.state("a").displayed_tier is FidelityTier.FULL


def test_failures_reach_error_handler(make_scheduler, fetcher, bus):
    reported = []
    bus.subscribe(ErrorOccurredEvent, reported.append)
    handler = ErrorHandler(logging.getLogger("test.dispatch"), bus)
    scheduler = make_scheduler(error_handler=handler)
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    fetcher.fail(sim_url("a", "small"), "HTTP 404")

    assert len(reported) == 1
    event = reported[0]
    assert isinstance(event.error, FetchFailedError)
    assert event.severity is ErrorSeverity.WARNING
    assert event.context == {"image_id": "a", "tier": "small"}
    assert "HTTP 404" in str(event.error)


def test_locator_failure_reported_as_locator_error(make_scheduler, bus):
    reported = []
    bus.subscribe(ErrorOccurredEvent, reported.append)
    handler = ErrorHandler(logging.getLogger("test.dispatch"), bus)
    scheduler = make_scheduler(locator=SimulatedLocator(credential=False), error_handler=handler)
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    assert isinstance(reported[0].error, LocatorUnavailableError)


def test_loaded_bytes_are_cached_and_published(make_scheduler, fetcher, bus):
    cache = MediaByteCache()
    loaded = []
    bus.subscribe(TierLoadedEvent, loaded.append)
    scheduler = make_scheduler(byte_cache=cache)
    scheduler.register_image("a", visible=True)
    scheduler.tick()
    fetcher.succeed(sim_url("a", "small"), b"12345")

    assert cache.get("a", FidelityTier.SMALL) == b"12345"
    assert [(e.tier, e.provisional, e.size_bytes) for e in loaded] == [("small", True, 5)]

    scheduler.destroy_image("a")
    assert cache.get("a", FidelityTier.SMALL) is None
