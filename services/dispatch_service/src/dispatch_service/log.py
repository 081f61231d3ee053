"""Logging setup for dispatch_service (delegates to shared)."""

from shared.log import JsonFormatter, mask_phone, setup_logging as _setup

__all__ = ["JsonFormatter", "mask_phone", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(
        level,
        suppress=["confluent_kafka", "httpx", "httpcore"],
        service="dispatch_service",
    )
