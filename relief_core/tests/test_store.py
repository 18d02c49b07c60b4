# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the in-memory entity store.
"""

import pytest

from relief_core.exceptions import ValidationError
from relief_core.models.base import utc_now
from relief_core.models.entities import Disaster, EmergencyResource, Location
from relief_core.services.store import InMemoryEntityStore, model_for


class TestInMemoryEntityStore:
    """Test create, get, find and compare-and-swap update."""

    def setup_method(self):
        """Set up a store holding one resource."""
        self.store = InMemoryEntityStore()
        self.resource = EmergencyResource(name="Rice", category="food", quantity=100, location_id="loc-1")
        self.store.create("resources", self.resource)

    def test_model_for_unknown_collection(self):
        """Test unknown collections are rejected."""
        assert model_for("resources") is EmergencyResource
        with pytest.raises(ValidationError):
            model_for("users")

    def test_create_and_get(self):
        """Test created entities are returned by id."""
        stored = self.store.get("resources", self.resource.id)

        assert stored == self.resource
        assert self.store.get("resources", "missing") is None

    def test_create_duplicate_id(self):
        """Test creating an existing id raises ValidationError."""
        with pytest.raises(ValidationError):
            self.store.create("resources", self.resource)

    def test_create_unknown_collection(self):
        """Test writing to an unknown collection raises ValidationError."""
        with pytest.raises(ValidationError):
            self.store.create("users", self.resource)

    def test_returned_entities_are_copies(self):
        """Test mutating a returned entity does not change the store."""
        stored = self.store.get("resources", self.resource.id)
        stored.allocated_quantity = 50
        self.resource.allocated_quantity = 10

        assert self.store.get("resources", self.resource.id).allocated_quantity == 0

    def test_update_bumps_version(self):
        """Test a swap at the stored version succeeds and bumps it."""
        current = self.store.get("resources", self.resource.id)
        current.allocated_quantity = 40

        assert self.store.update("resources", current, expected_version=0) is True
        assert current.version == 1

        stored = self.store.get("resources", self.resource.id)
        assert stored.version == 1
        assert stored.allocated_quantity == 40

    def test_stale_update_rejected(self):
        """Test a swap against an outdated version fails without writing."""
        first = self.store.get("resources", self.resource.id)
        second = self.store.get("resources", self.resource.id)
        first.allocated_quantity = 40
        second.allocated_quantity = 70

        assert self.store.update("resources", first, expected_version=0) is True
        assert self.store.update("resources", second, expected_version=0) is False
        assert second.version == 0
        assert self.store.get("resources", self.resource.id).allocated_quantity == 40

    def test_update_missing_entity(self):
        """Test updating an entity that was never created fails."""
        other = EmergencyResource(name="Water", category="water", quantity=10, location_id="loc-1")

        assert self.store.update("resources", other, expected_version=0) is False

    def test_find_filters(self):
        """Test find matches field equality in insertion order."""
        water = EmergencyResource(name="Water", category="water", quantity=10, location_id="loc-2")
        beans = EmergencyResource(name="Beans", category="food", quantity=5, location_id="loc-2")
        self.store.create("resources", water)
        self.store.create("resources", beans)

        assert [r.name for r in self.store.find("resources", category="food")] == ["Rice", "Beans"]
        assert [r.name for r in self.store.find("resources", category="food", location_id="loc-2")] == ["Beans"]
        assert len(self.store.find("resources")) == 3

    def test_find_list_membership(self):
        """Test a scalar filter on a list field matches membership."""
        disaster = Disaster(
            name="Flood near Jakarta", disaster_type="flood", severity=3,
            start_time=utc_now(), primary_location_id="loc-1", report_ids=["r1", "r2"]
        )
        self.store.create("disasters", disaster)

        assert [d.id for d in self.store.find("disasters", report_ids="r2")] == [disaster.id]
        assert self.store.find("disasters", report_ids="r3") == []

    def test_frozen_entities(self):
        """Test immutable locations are stored and returned."""
        location = Location(latitude=-6.2, longitude=106.8, name="Jakarta")
        self.store.create("locations", location)

        assert self.store.get("locations", location.id).name == "Jakarta"

    def test_health_check(self):
        """Test health check reports document counts."""
        health = self.store.health_check()

        assert health["status"] == "healthy"
        assert health["backend"] == "memory"
        assert health["documents"]["resources"] == 1
        assert health["documents"]["reports"] == 0
