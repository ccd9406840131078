# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from enum import Enum

from pydiverse.replication.core.metadata import CatalogRecord, strip_non_comparables


class MetadataAction(Enum):
    """What has to happen to the destination record

    - CREATE: The object doesn't exist on the destination.
    - ALTER: The object exists, but some comparable attributes differ.
    - NOOP: The object exists and is up to date.
    """

    CREATE = 0
    ALTER = 1
    NOOP = 2


def decide_action(
    existing: CatalogRecord | None, expected: CatalogRecord
) -> MetadataAction:
    if existing is None:
        return MetadataAction.CREATE
    if strip_non_comparables(existing) == strip_non_comparables(expected):
        return MetadataAction.NOOP
    return MetadataAction.ALTER
