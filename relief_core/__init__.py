# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Relief coordination engine.

Report validation and disaster correlation, the resource-allocation ledger,
evacuation-center capacity management and volunteer dispatch, all driven by
geospatial proximity and emitting typed domain events.
"""

__version__ = "1.0.0"
