# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

# Set test environment
os.environ['ENVIRONMENT'] = 'test'

from relief_core.config import EngineConfig
from relief_core.engine import CoordinationEngine
from relief_core.models.entities import (
    EmergencyResource,
    EvacuationCenter,
    UserContext,
    Volunteer
)
from relief_core.models.enums import UserRole
from relief_core.services.events import EventRecorder


class FakeClock:
    """Settable clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    """Fake engine clock starting 2024-03-01 08:00 UTC."""
    return FakeClock()


@pytest.fixture
def engine_config():
    """Engine configuration with tracing disabled."""
    return EngineConfig(environment='test', otel_enabled=False)


@pytest.fixture
def engine(engine_config, clock):
    """In-memory coordination engine driven by the fake clock."""
    return CoordinationEngine.create(config=engine_config, clock=clock)


@pytest.fixture
def recorder(engine):
    """Recorder subscribed to every event of the engine."""
    recorder = EventRecorder()
    engine.events.subscribe("*", recorder)
    return recorder


@pytest.fixture
def admin():
    """Admin actor."""
    return UserContext(user_id="admin-1", role=UserRole.ADMIN, name="Admin")


@pytest.fixture
def volunteer_user():
    """Volunteer actor; volunteers may validate reports."""
    return UserContext(user_id="volunteer-user-1", role=UserRole.VOLUNTEER)


@pytest.fixture
def org_rep():
    """Organization representative actor."""
    return UserContext(user_id="org-rep-1", role=UserRole.ORGANIZATION_REP)


@pytest.fixture
def reporter():
    """Citizen reporter actor."""
    return UserContext(user_id="reporter-1", role=UserRole.REPORTER)


@pytest.fixture
def analyst():
    """Analyst actor."""
    return UserContext(user_id="analyst-1", role=UserRole.ANALYST)


@pytest.fixture
def jakarta(engine):
    """Location in central Jakarta."""
    return engine.locations.create(-6.2000, 106.8166, name="Jakarta", city="Jakarta")


@pytest.fixture
def make_location(engine):
    """Factory creating stored locations."""
    def _make(latitude: float, longitude: float, **details):
        return engine.locations.create(latitude, longitude, **details)
    return _make


@pytest.fixture
def report_payload(jakarta) -> Dict[str, Any]:
    """Valid flood report payload at the Jakarta location."""
    return {
        "title": "River overflowing near market",
        "description": "Water level rising quickly, streets flooded",
        "disaster_type": "flood",
        "location_id": jakarta.id,
        "estimated_severity": 3,
        "affected_people": 120,
        "required_skills": ["first_aid", "boat"],
        "anonymous_phone": "+62 811 000 000"
    }


@pytest.fixture
def submit_valid(engine, volunteer_user):
    """Factory submitting and validating a report; returns the valid report."""
    def _submit(payload, actor=None):
        report = engine.reports.submit(payload, actor=actor)
        return engine.reports.validate(report.id, volunteer_user, "valid")
    return _submit


@pytest.fixture
def make_resource(engine, admin):
    """Factory registering a resource at a location."""
    def _make(location, quantity=1000, category="food", name="Rice", **fields):
        resource = EmergencyResource(
            name=name,
            category=category,
            quantity=quantity,
            unit=fields.pop("unit", "kg"),
            location_id=location.id,
            **fields
        )
        return engine.ledger.register_resource(resource, actor=admin)
    return _make


@pytest.fixture
def make_center(engine, admin):
    """Factory registering an evacuation center at a location."""
    def _make(location, capacity=100, occupancy=0, name="Shelter"):
        center = EvacuationCenter(
            name=name,
            location_id=location.id,
            capacity=capacity,
            current_occupancy=occupancy
        )
        return engine.evacuation.register_center(center, actor=admin)
    return _make


@pytest.fixture
def make_volunteer(engine):
    """Factory registering a volunteer profile."""
    def _make(location=None, skills=("first_aid",), experience_years=0, user_id=None, **fields):
        volunteer = Volunteer(
            user_id=user_id or f"user-{len(engine.context.store.find('volunteers')) + 1}",
            skills=set(skills),
            experience_years=experience_years,
            current_location_id=location.id if location is not None else None,
            **fields
        )
        return engine.volunteers.register_volunteer(volunteer)
    return _make
