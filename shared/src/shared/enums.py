from enum import StrEnum


class Channel(StrEnum):
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


ALL_CHANNELS: set[str] = {c.value for c in Channel}


class DeliveryStatus(StrEnum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}
)


class AudienceType(StrEnum):
    ALL = "all"
    ROLE = "role"
    CLASS = "class"
    INDIVIDUAL = "individual"


class Role(StrEnum):
    ADMIN = "admin"
    TEACHER = "teacher"
    PARENT = "parent"


AUTHOR_ROLES: frozenset[str] = frozenset({Role.ADMIN, Role.TEACHER})
