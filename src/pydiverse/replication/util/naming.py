# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from urllib.parse import quote


def normalize_name(name: str) -> str:
    """Normalizes an instance identifier into one lock path segment"""
    if name is not None:
        return name.casefold().strip().replace("/", "_")


def lock_node_name(resource_key: str) -> str:
    """Converts a lock resource key into a single path segment

    Resource keys of partitions contain slashes (``db.table/ds=1/hr=0``).
    Percent-encoding keeps distinct keys distinct, unlike replacing the slash.
    """
    return quote(resource_key, safe="")
