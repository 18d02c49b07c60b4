# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for evacuation center capacity management.
"""

import threading
import pytest
from unittest.mock import patch

from relief_core.domain.evacuation import became_full, can_accept, occupancy_after_release
from relief_core.exceptions import AuthorizationError, NoCapacityAvailable, NotFound, ValidationError
from relief_core.models.entities import EvacuationCenter
from relief_core.models.enums import CenterStatus
from relief_core.models.events import CenterFull, EvacueeAssigned


class TestEvacuationDomain:
    """Test pure capacity helpers."""

    def setup_method(self):
        """Set up a nearly full center."""
        self.center = EvacuationCenter(name="School", location_id="loc", capacity=300, current_occupancy=295)

    def test_can_accept(self):
        """Test groups must fit whole into an operational center."""
        assert can_accept(self.center, 5)
        assert not can_accept(self.center, 6)
        assert not can_accept(self.center.evolve(closed=True), 1)

    def test_release_floors_at_zero(self):
        """Test releasing more than present floors at zero."""
        assert occupancy_after_release(self.center, 1000) == 0

    def test_became_full(self):
        """Test only the assignment filling the center reports it."""
        full = self.center.evolve(current_occupancy=300)

        assert became_full(self.center, full)
        assert not became_full(full, full)


class TestEvacuationAssignment:
    """Test evacuee assignment through the engine."""

    def setup_method(self):
        """Set up coordinates around a query point."""
        self.origin = (-6.2000, 106.8166)
        self.nearest = (-6.2050, 106.8166)
        self.next_nearest = (-6.2200, 106.8166)
        self.distant = (-7.0000, 106.8166)

    def test_nearest_center_with_room(self, engine, recorder, make_center, make_location, org_rep):
        """Test a group goes to the closest center with headroom."""
        center = make_center(make_location(*self.nearest), capacity=100)
        make_center(make_location(*self.next_nearest), capacity=100)

        assignment = engine.evacuation.assign(30, self.origin, actor=org_rep)

        assert assignment.center_id == center.id
        assert assignment.evacuee_count == 30
        assert assignment.distance_meters == pytest.approx(556, rel=0.01)
        assert engine.evacuation.get(center.id).current_occupancy == 30

        events = recorder.of_type(EvacueeAssigned)
        assert len(events) == 1
        assert (events[0].center_id, events[0].count) == (center.id, 30)

    def test_falls_through_to_next_center(self, engine, make_center, make_location):
        """Test a nearly full nearest center is skipped."""
        full = make_center(make_location(*self.nearest), capacity=300, occupancy=295)
        second = make_center(make_location(*self.next_nearest), capacity=50, occupancy=30)

        assignment = engine.evacuation.assign(10, self.origin)

        assert assignment.center_id == second.id
        assert engine.evacuation.get(full.id).current_occupancy == 295
        assert engine.evacuation.headroom(second.id) == 10

    def test_no_capacity_within_radius(self, engine, make_center, make_location):
        """Test NoCapacityAvailable when no center in range has room."""
        make_center(make_location(*self.nearest), capacity=300, occupancy=295)
        make_center(make_location(*self.distant), capacity=500)

        with pytest.raises(NoCapacityAvailable) as exc_info:
            engine.evacuation.assign(10, self.origin, max_radius=20000)

        assert exc_info.value.evacuee_count == 10
        assert exc_info.value.radius_meters == 20000

    def test_group_is_never_split(self, engine, make_center, make_location):
        """Test a group larger than every single headroom is rejected."""
        make_center(make_location(*self.nearest), capacity=20)
        make_center(make_location(*self.next_nearest), capacity=20)

        with pytest.raises(NoCapacityAvailable):
            engine.evacuation.assign(30, self.origin)

    def test_search_by_location_id(self, engine, make_center, make_location, jakarta):
        """Test the query point may be a location id."""
        center = make_center(make_location(*self.nearest))

        assert engine.evacuation.assign(5, jakarta.id).center_id == center.id

    def test_center_full_event(self, engine, recorder, make_center, make_location):
        """Test filling a center emits CenterFull once."""
        center = make_center(make_location(*self.nearest), capacity=10, occupancy=4)

        engine.evacuation.assign(6, self.origin)

        assert engine.evacuation.get(center.id).status == CenterStatus.FULL
        assert [event.center_id for event in recorder.of_type(CenterFull)] == [center.id]
        with pytest.raises(NoCapacityAvailable):
            engine.evacuation.assign(1, self.origin)

    def test_closed_center_skipped(self, engine, make_center, make_location, admin):
        """Test closed centers receive no evacuees until reopened."""
        center = make_center(make_location(*self.nearest))
        engine.evacuation.close(center.id, admin)

        with pytest.raises(NoCapacityAvailable):
            engine.evacuation.assign(1, self.origin)

        engine.evacuation.reopen(center.id, admin)
        assert engine.evacuation.assign(1, self.origin).center_id == center.id

    @pytest.mark.parametrize("count", [0, -3, 1.5, True])
    def test_invalid_count(self, engine, count):
        """Test evacuee counts must be positive integers."""
        with pytest.raises(ValidationError):
            engine.evacuation.assign(count, self.origin)

    def test_assign_requires_capability(self, engine, reporter):
        """Test reporters cannot assign evacuees."""
        with pytest.raises(AuthorizationError):
            engine.evacuation.assign(1, self.origin, actor=reporter)

    def test_close_requires_capability(self, engine, make_center, make_location, org_rep):
        """Test only roles with evacuation:manage close centers."""
        center = make_center(make_location(*self.nearest))

        with pytest.raises(AuthorizationError):
            engine.evacuation.close(center.id, org_rep)

    def test_release(self, engine, make_center, make_location):
        """Test release lowers occupancy and floors at zero."""
        center = make_center(make_location(*self.nearest), capacity=100, occupancy=40)

        assert engine.evacuation.release(center.id, 15).current_occupancy == 25
        assert engine.evacuation.release(center.id, 100).current_occupancy == 0

    def test_release_unknown_center(self, engine):
        """Test releasing from an unknown center raises NotFound."""
        with pytest.raises(NotFound):
            engine.evacuation.release("65f000000000000000000000", 1)

    def test_concurrent_assignments_never_overfill(self, engine, make_center, make_location):
        """Test concurrent assignments keep every center within capacity."""
        centers = [
            make_center(make_location(*self.nearest), capacity=25),
            make_center(make_location(*self.next_nearest), capacity=40),
        ]
        barrier = threading.Barrier(12)
        placed = []
        rejected = []
        lock = threading.Lock()

        def assign():
            barrier.wait()
            for _ in range(5):
                try:
                    assignment = engine.evacuation.assign(3, self.origin)
                    with lock:
                        placed.append(assignment)
                except NoCapacityAvailable:
                    with lock:
                        rejected.append(1)

        threads = [threading.Thread(target=assign) for _ in range(12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        occupancies = {center.id: engine.evacuation.get(center.id).current_occupancy for center in centers}
        assert occupancies == {centers[0].id: 24, centers[1].id: 39}
        assert len(placed) == 21
        assert len(rejected) == 60 - 21
        for center in centers:
            placed_here = sum(a.evacuee_count for a in placed if a.center_id == center.id)
            assert placed_here == occupancies[center.id]

    def test_interleaved_assign_and_release(self, engine, make_center, make_location):
        """Test concurrent arrivals and departures commit one after another within capacity."""
        center = make_center(make_location(*self.nearest), capacity=30, occupancy=10)
        compare_and_swap = engine.context.compare_and_swap
        commits = []
        lock = threading.Lock()

        def recording(collection, entity_id, entity_name, mutate):
            before, after = compare_and_swap(collection, entity_id, entity_name, mutate)
            if entity_id == center.id:
                with lock:
                    commits.append((before, after))
            return before, after

        barrier = threading.Barrier(8)
        placed = []
        released = []

        def arrive():
            barrier.wait()
            for _ in range(10):
                try:
                    assignment = engine.evacuation.assign(2, self.origin)
                    with lock:
                        placed.append(assignment)
                except NoCapacityAvailable:
                    pass

        def depart():
            barrier.wait()
            for _ in range(10):
                after = engine.evacuation.release(center.id, 3)
                with lock:
                    released.append(after)

        with patch.object(engine.context, "compare_and_swap", side_effect=recording):
            threads = [threading.Thread(target=arrive) for _ in range(4)]
            threads += [threading.Thread(target=depart) for _ in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert len(released) == 40
        assert len(commits) == len(placed) + len(released)

        commits.sort(key=lambda commit: commit[0].version)
        occupancy = 10
        for before, after in commits:
            assert before.current_occupancy == occupancy
            assert 0 <= after.current_occupancy <= 30
            delta = after.current_occupancy - before.current_occupancy
            assert delta == 2 or after.current_occupancy == max(0, before.current_occupancy - 3)
            occupancy = after.current_occupancy

        assert engine.evacuation.get(center.id).current_occupancy == occupancy
