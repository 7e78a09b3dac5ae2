from .media import (
    DISPATCH_ORDER,
    FidelityTier,
    LoadTask,
    LogicalImage,
    QueueName,
    ResourceState,
    TaskKind,
)

__all__ = [
    "DISPATCH_ORDER",
    "FidelityTier",
    "LoadTask",
    "LogicalImage",
    "QueueName",
    "ResourceState",
    "TaskKind",
]
