"""Shared enums and types for card capsules."""

from enum import StrEnum


class CapsuleStatus(StrEnum):
    ACTIVE = "active"
    INVALIDATED = "invalidated"


class CapsuleType(StrEnum):
    DECISION = "decision"
    FINDING = "finding"


class Significance(StrEnum):
    ARCHITECTURAL = "architectural"
    IMPLEMENTATION = "implementation"
    CONTEXT = "context"


class Origin(StrEnum):
    HUMAN = "human"
    AGENT = "agent"


class Confirmation(StrEnum):
    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


class GraphDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    BOTH = "both"
