# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Engine configuration.

A single ``EngineConfig`` is built at startup (usually from the environment)
and handed to every component through the engine context.
"""

import os
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Optional

from .exceptions import ValidationError


@dataclass(frozen=True)
class EngineConfig:
    """Coordination engine settings."""
    # Report credibility
    correlation_radius_meters: float = 500.0
    correlation_window_hours: float = 6.0
    anonymous_base_score: float = 0.3
    identified_base_score: float = 0.6
    corroboration_step: float = 0.1
    corroboration_cap: float = 0.3
    media_step: float = 0.05
    media_cap: float = 0.1

    # Disaster correlation
    merge_radius_meters: float = 2000.0
    merge_window_hours: float = 24.0

    # Evacuation
    evacuation_search_radius_meters: float = 50000.0

    # Volunteer dispatch
    ack_timeout_minutes: float = 15.0
    timeout_check_interval_seconds: float = 30.0

    # Ledger
    ledger_max_retries: int = 3

    # Geo index
    geo_cell_size_degrees: float = 0.1

    # Infrastructure
    environment: str = "development"
    otel_enabled: bool = True
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "relief_core"
    amqp_url: Optional[str] = None
    amqp_exchange: str = "relief.events"
    redis_url: Optional[str] = None

    def __post_init__(self):
        errors = []
        for name in (
            "correlation_radius_meters", "correlation_window_hours", "merge_radius_meters",
            "merge_window_hours", "evacuation_search_radius_meters", "ack_timeout_minutes",
            "timeout_check_interval_seconds", "geo_cell_size_degrees"
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.ledger_max_retries < 1:
            errors.append("ledger_max_retries must be at least 1")
        if not 0.0 <= self.anonymous_base_score <= 1.0 or not 0.0 <= self.identified_base_score <= 1.0:
            errors.append("credibility base scores must be between 0 and 1")
        if errors:
            raise ValidationError("Invalid engine configuration", errors)

    @property
    def correlation_window(self) -> timedelta:
        return timedelta(hours=self.correlation_window_hours)

    @property
    def merge_window(self) -> timedelta:
        return timedelta(hours=self.merge_window_hours)

    @property
    def ack_timeout(self) -> timedelta:
        return timedelta(minutes=self.ack_timeout_minutes)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Build configuration from environment variables.

        Numeric settings are read from ``RELIEF_<FIELD_NAME>`` (upper case);
        infrastructure settings use their conventional names.
        """
        values = {}
        for field in fields(cls):
            raw = os.getenv(f"RELIEF_{field.name.upper()}")
            if raw is None:
                continue
            values[field.name] = _coerce(field.name, field.type, raw)

        values.setdefault("environment", os.getenv("ENVIRONMENT", "development"))
        values.setdefault("otel_enabled", os.getenv("OTEL_ENABLED", "true").lower() == "true")
        values.setdefault("mongodb_uri", os.getenv("MONGODB_URI"))
        values.setdefault("mongodb_database", os.getenv("MONGODB_DATABASE", "relief_core"))
        values.setdefault("amqp_url", os.getenv("AMQP_URL"))
        values.setdefault("redis_url", os.getenv("REDIS_URL"))
        return cls(**values)


def _coerce(name: str, field_type, raw: str):
    try:
        if field_type is bool:
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if field_type is int:
            return int(raw)
        if field_type is float:
            return float(raw)
    except ValueError:
        raise ValidationError(f"Invalid value for RELIEF_{name.upper()}: {raw!r}")
    return raw
