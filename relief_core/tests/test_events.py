# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the in-process event bus.
"""

import threading
import time
import pytest

from relief_core.models.events import CenterFull, EvacueeAssigned, ReportResolved
from relief_core.services.events import EventBus, EventRecorder


class TestEventBus:
    """Test event queueing and delivery."""

    def setup_method(self):
        """Set up a bus with a wildcard recorder."""
        self.bus = EventBus()
        self.recorder = EventRecorder()
        self.bus.subscribe("*", self.recorder)

    def test_publish_only_enqueues(self):
        """Test events are not delivered before flush."""
        self.bus.publish(ReportResolved(report_id="r1"))

        assert self.recorder.events == []
        assert self.bus.pending() == 1

    def test_flush_delivers_in_order(self):
        """Test FIFO delivery."""
        events = [ReportResolved(report_id=f"r{i}") for i in range(5)]
        self.bus.publish_all(events)

        assert self.bus.flush() == 5
        assert self.recorder.events == events
        assert self.bus.pending() == 0
        assert self.bus.flush() == 0

    def test_type_subscriptions(self):
        """Test handlers only receive their event type, by class or routing key."""
        by_class = EventRecorder()
        by_key = EventRecorder()
        self.bus.subscribe(CenterFull, by_class)
        self.bus.subscribe("evacuation.assigned", by_key)

        self.bus.publish(CenterFull(center_id="c1"))
        self.bus.publish(EvacueeAssigned(center_id="c1", count=3, assignment_id="a1"))
        self.bus.flush()

        assert [type(event) for event in by_class.events] == [CenterFull]
        assert [type(event) for event in by_key.events] == [EvacueeAssigned]
        assert len(self.recorder.events) == 2

    def test_failing_handler_does_not_block_others(self):
        """Test a raising subscriber is logged and delivery continues."""
        def broken(event):
            raise RuntimeError("subscriber down")

        late = EventRecorder()
        self.bus.subscribe(ReportResolved, broken)
        self.bus.subscribe(ReportResolved, late)

        self.bus.publish(ReportResolved(report_id="r1"))
        self.bus.publish(ReportResolved(report_id="r2"))

        assert self.bus.flush() == 2
        assert [event.report_id for event in late.events] == ["r1", "r2"]

    def test_handler_publishing_is_delivered_in_same_flush(self):
        """Test events published by handlers are delivered after the current queue."""
        nested = []

        def cascade(event):
            self.bus.publish(CenterFull(center_id=event.center_id))
            nested.append(self.bus.flush())

        self.bus.subscribe(EvacueeAssigned, cascade)
        self.bus.publish(EvacueeAssigned(center_id="c1", count=3, assignment_id="a1"))
        self.bus.publish(ReportResolved(report_id="r1"))

        assert self.bus.flush() == 3
        assert nested == [0]
        assert [type(event) for event in self.recorder.events] == [EvacueeAssigned, ReportResolved, CenterFull]

    def test_unsubscribe(self):
        """Test unsubscribed handlers receive nothing."""
        self.bus.unsubscribe("*", self.recorder)
        self.bus.unsubscribe("*", self.recorder)

        self.bus.publish(ReportResolved(report_id="r1"))
        self.bus.flush()

        assert self.recorder.events == []

    def test_recorder_helpers(self):
        """Test of_type filtering and clear."""
        self.bus.publish(CenterFull(center_id="c1"))
        self.bus.publish(ReportResolved(report_id="r1"))
        self.bus.flush()

        assert [event.center_id for event in self.recorder.of_type(CenterFull)] == ["c1"]
        self.recorder.clear()
        assert self.recorder.events == []

    def test_worker_delivers(self):
        """Test the background worker delivers without explicit flush."""
        self.bus.start_worker(poll_interval=0.01)
        try:
            self.bus.publish(ReportResolved(report_id="r1"))
            for _ in range(200):
                if self.recorder.events:
                    break
                time.sleep(0.01)
        finally:
            self.bus.stop_worker()

        assert [event.report_id for event in self.recorder.events] == ["r1"]

    def test_stop_worker_drains_queue(self):
        """Test stopping the worker delivers what is still queued."""
        self.bus.start_worker(poll_interval=10)
        self.bus.publish(ReportResolved(report_id="r1"))
        self.bus.stop_worker()

        assert self.bus.pending() == 0
        assert len(self.recorder.events) == 1

    def test_stop_without_worker(self):
        """Test stopping a bus without a worker is a no-op."""
        self.bus.stop_worker()

        assert self.bus.pending() == 0

    def test_flush_does_not_wait_for_busy_delivery(self):
        """Test a second flusher returns while another thread is inside a handler."""
        entered = threading.Event()
        release = threading.Event()

        def slow(event):
            entered.set()
            release.wait(5)

        self.bus.subscribe(CenterFull, slow)
        self.bus.publish(CenterFull(center_id="c1"))
        delivering = threading.Thread(target=self.bus.flush)
        delivering.start()
        assert entered.wait(5)

        self.bus.publish(ReportResolved(report_id="r1"))
        started = time.monotonic()
        assert self.bus.flush() == 0
        assert time.monotonic() - started < 1

        release.set()
        delivering.join(5)

        assert self.bus.pending() == 0
        assert [type(event) for event in self.recorder.events] == [CenterFull, ReportResolved]

    def test_settle_only_enqueues_while_worker_runs(self):
        """Test settle leaves delivery to the worker."""
        release = threading.Event()
        self.bus.subscribe(ReportResolved, lambda event: release.wait(5))
        self.bus.start_worker(poll_interval=0.01)
        try:
            assert self.bus.worker_running
            self.bus.publish(ReportResolved(report_id="r1"))
            self.bus.publish(ReportResolved(report_id="r2"))
            assert self.bus.settle() == 0
        finally:
            release.set()
            self.bus.stop_worker()

        assert not self.bus.worker_running
        assert [event.report_id for event in self.recorder.events] == ["r1", "r2"]

    def test_settle_delivers_without_worker(self):
        """Test settle flushes inline when no worker is running."""
        self.bus.publish(ReportResolved(report_id="r1"))

        assert self.bus.settle() == 1
        assert len(self.recorder.events) == 1
