from .entity import (
    Entity,
    IntervalEntity,
    effective_interval,
    project_effective_interval,
)

__all__ = [
    "Entity",
    "IntervalEntity",
    "effective_interval",
    "project_effective_interval",
]
