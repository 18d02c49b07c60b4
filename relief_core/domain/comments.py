# SPDX-License-Identifier: Apache-2.0

"""
Comment threads on reports.

Comments live in a flat arena keyed by id; replies point at their parent by
id and threads are rebuilt by index lookup.
"""

import threading
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from ..exceptions import NotFound, ValidationError
from ..models.entities import Comment


class CommentThread:
    """Arena of comments grouped by report."""

    def __init__(self):
        self._comments: Dict[str, Comment] = {}
        self._children: Dict[Optional[str], List[str]] = defaultdict(list)
        self._roots: Dict[str, List[str]] = defaultdict(list)
        self._lock = threading.Lock()

    def add(self, comment: Comment) -> Comment:
        """
        Add a comment.

        Raises:
            NotFound: If the parent does not exist
            ValidationError: If the parent belongs to another report
        """
        with self._lock:
            if comment.id in self._comments:
                raise ValidationError(f"Comment already exists: {comment.id}")
            if comment.parent_id is not None:
                parent = self._comments.get(comment.parent_id)
                if parent is None:
                    raise NotFound("Comment", comment.parent_id)
                if parent.report_id != comment.report_id:
                    raise ValidationError("Reply must belong to the same report as its parent")
                self._children[comment.parent_id].append(comment.id)
            else:
                self._roots[comment.report_id].append(comment.id)
            self._comments[comment.id] = comment
        return comment

    def get(self, comment_id: str) -> Comment:
        comment = self._comments.get(comment_id)
        if comment is None:
            raise NotFound("Comment", comment_id)
        return comment

    def children(self, comment_id: str) -> List[Comment]:
        """Direct replies in insertion order."""
        with self._lock:
            return [self._comments[child] for child in self._children.get(comment_id, [])]

    def thread(self, report_id: str) -> List[Tuple[int, Comment]]:
        """All comments of a report depth-first, as (depth, comment) pairs."""
        with self._lock:
            ordered = []
            stack = [(0, comment_id) for comment_id in reversed(self._roots.get(report_id, []))]
            while stack:
                depth, comment_id = stack.pop()
                ordered.append((depth, self._comments[comment_id]))
                for child in reversed(self._children.get(comment_id, [])):
                    stack.append((depth + 1, child))
            return ordered

    def __len__(self) -> int:
        return len(self._comments)
