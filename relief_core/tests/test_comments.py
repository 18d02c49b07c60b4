# SPDX-License-Identifier: Apache-2.0

"""
Tests for report comment threads.
"""

import pytest

from relief_core.domain.comments import CommentThread
from relief_core.exceptions import NotFound, ValidationError
from relief_core.models.entities import Comment


class TestCommentThread:
    """Test the comment arena and thread ordering."""

    def setup_method(self):
        """Set up a thread with a root comment and a reply."""
        self.comments = CommentThread()
        self.root = self.comments.add(Comment(report_id="r1", user_id="u1", content="Water rising fast"))
        self.reply = self.comments.add(
            Comment(report_id="r1", user_id="u2", content="Confirmed from the bridge", parent_id=self.root.id)
        )

    def test_children(self):
        """Test direct replies are returned in insertion order."""
        second = self.comments.add(Comment(report_id="r1", content="Boats needed", parent_id=self.root.id))

        assert [c.id for c in self.comments.children(self.root.id)] == [self.reply.id, second.id]
        assert self.comments.children(self.reply.id) == []

    def test_thread_is_depth_first(self):
        """Test threads list each comment after its parent with its depth."""
        nested = self.comments.add(Comment(report_id="r1", content="On my way", parent_id=self.reply.id))
        other_root = self.comments.add(Comment(report_id="r1", content="Road closed"))
        self.comments.add(Comment(report_id="r2", content="Different report"))

        thread = self.comments.thread("r1")

        assert [(depth, c.id) for depth, c in thread] == [
            (0, self.root.id),
            (1, self.reply.id),
            (2, nested.id),
            (0, other_root.id),
        ]

    def test_unknown_parent(self):
        """Test replies to unknown comments raise NotFound."""
        with pytest.raises(NotFound):
            self.comments.add(Comment(report_id="r1", content="Lost reply", parent_id="missing"))

    def test_parent_on_other_report(self):
        """Test replies must stay on their parent's report."""
        with pytest.raises(ValidationError):
            self.comments.add(Comment(report_id="r2", content="Wrong report", parent_id=self.root.id))

    def test_duplicate_id(self):
        """Test comment ids are unique."""
        with pytest.raises(ValidationError):
            self.comments.add(self.root)

    def test_get(self):
        """Test lookup by id."""
        assert self.comments.get(self.reply.id) is self.reply
        assert len(self.comments) == 2
        with pytest.raises(NotFound):
            self.comments.get("missing")

    def test_empty_content_rejected(self):
        """Test blank comments fail model validation."""
        with pytest.raises(ValueError):
            Comment(report_id="r1", content="   ")
