import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = Path(__file__).resolve().parent

for entry in (SRC, TESTS):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

from chatmedia.config import SchedulerConfig  # noqa: E402
from chatmedia.events.bus import EventBus  # noqa: E402
from chatmedia.scheduling.clock import VirtualClock  # noqa: E402
from chatmedia.scheduling.scheduler import MediaLoadScheduler  # noqa: E402
from chatmedia.scheduling.simulation import SimulatedLocator  # noqa: E402
from fakes import ManualFetcher, RecordingPresenter  # noqa: E402


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def fetcher() -> ManualFetcher:
    return ManualFetcher()


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_scheduler(clock, fetcher, presenter, bus) -> Callable[..., MediaLoadScheduler]:
    """Build a scheduler wired to the shared fakes; keyword overrides win."""

    def _factory(**overrides) -> MediaLoadScheduler:
        config = overrides.pop("config", None) or SchedulerConfig()
        return MediaLoadScheduler(
            overrides.pop("locator", None) or SimulatedLocator(),
            overrides.pop("fetcher", fetcher),
            overrides.pop("presenter", presenter),
            clock=clock,
            config=config,
            event_bus=overrides.pop("event_bus", bus),
            **overrides,
        )

    return _factory
