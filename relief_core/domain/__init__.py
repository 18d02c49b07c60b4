# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the coordination engine.

This package contains pure business rules with no side effects: status
transition tables, scoring, matching and ranking. Services call into these
functions while holding their locks.
"""
