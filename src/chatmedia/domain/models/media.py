from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from ...errors import InvalidTaskError


class FidelityTier(IntEnum):
    """Resolution tiers, ordered by increasing byte size."""

    SMALL = 0
    MEDIUM = 1
    FULL = 2

    @property
    def is_thumbnail(self) -> bool:
        return self is not FidelityTier.FULL

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "FidelityTier | str | int") -> "FidelityTier":
        if isinstance(value, FidelityTier):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown fidelity tier: {value!r}") from None
        return cls(value)


class QueueName(IntEnum):
    """Pending-task queues; the declaration order is the dispatch priority."""

    USER_REQUESTED = 0
    VISIBLE_THUMBNAILS = 1
    HIDDEN_THUMBNAILS = 2
    FULL_IMAGES = 3

    @property
    def stats_key(self) -> str:
        head, *rest = self.name.lower().split("_")
        return head + "".join(part.title() for part in rest)


DISPATCH_ORDER: tuple[QueueName, ...] = tuple(sorted(QueueName))


class TaskKind(str, Enum):
    THUMBNAIL = "thumbnail"
    FULL = "full"


_ALLOWED_QUEUES: dict[TaskKind, frozenset[QueueName]] = {
    TaskKind.THUMBNAIL: frozenset(
        {QueueName.USER_REQUESTED, QueueName.VISIBLE_THUMBNAILS, QueueName.HIDDEN_THUMBNAILS}
    ),
    TaskKind.FULL: frozenset({QueueName.USER_REQUESTED, QueueName.FULL_IMAGES}),
}


@dataclass(frozen=True)
class LogicalImage:
    """Stable identity of one chat attachment, independent of fidelity."""

    id: str
    alt_text: str = ""
    # Pre-signed URLs shipped with the message payload, if any.
    thumbnail_url: Optional[str] = None
    full_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("LogicalImage requires a non-empty id")


@dataclass
class ResourceState:
    image: LogicalImage
    placeholder_ref: Any = None
    thumbnail_loaded: bool = False
    full_loaded: bool = False
    failed: bool = False
    displayed_tier: Optional[FidelityTier] = None
    provisional: bool = False

    @property
    def image_id(self) -> str:
        return self.image.id


@dataclass(frozen=True)
class LoadTask:
    """One pending load.

    ``tier`` is the highest tier the task should reach: thumbnail tasks walk
    ``SMALL`` up to ``tier``, full tasks fetch ``FULL`` only.  The queue a task
    may sit in is fixed by its kind, so a malformed task fails at construction.
    """

    image_id: str
    tier: FidelityTier
    queue: QueueName
    placeholder_ref: Any = field(default=None, compare=False)
    priority: float = 0.0

    def __post_init__(self) -> None:
        if not self.image_id:
            raise InvalidTaskError("LoadTask requires an image id")
        if not isinstance(self.tier, FidelityTier):
            raise InvalidTaskError(f"LoadTask tier must be a FidelityTier, got {self.tier!r}")
        if not isinstance(self.queue, QueueName):
            raise InvalidTaskError(f"LoadTask queue must be a QueueName, got {self.queue!r}")
        if self.queue not in _ALLOWED_QUEUES[self.kind]:
            raise InvalidTaskError(
                f"{self.kind.value} task for {self.image_id!r} cannot be queued in {self.queue.name}"
            )

    @property
    def kind(self) -> TaskKind:
        return TaskKind.THUMBNAIL if self.tier.is_thumbnail else TaskKind.FULL

    @property
    def tiers(self) -> tuple[FidelityTier, ...]:
        """Tiers fetched by this task, in order."""
        if self.kind is TaskKind.FULL:
            return (FidelityTier.FULL,)
        return tuple(t for t in FidelityTier if t <= self.tier)

    @classmethod
    def thumbnail(
        cls,
        image_id: str,
        queue: QueueName,
        *,
        placeholder_ref: Any = None,
        priority: float = 0.0,
        tier: FidelityTier = FidelityTier.MEDIUM,
    ) -> "LoadTask":
        if not tier.is_thumbnail:
            raise InvalidTaskError(f"Thumbnail task cannot target {tier.name}")
        return cls(image_id, tier, queue, placeholder_ref, priority)

    @classmethod
    def full(
        cls,
        image_id: str,
        queue: QueueName = QueueName.FULL_IMAGES,
        *,
        placeholder_ref: Any = None,
        priority: float = 0.0,
    ) -> "LoadTask":
        return cls(image_id, FidelityTier.FULL, queue, placeholder_ref, priority)
