# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Parley API: CRUD service with a write-behind cache in front of the durable store."""

__version__ = "0.1.0"
