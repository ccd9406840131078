# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from typing import TYPE_CHECKING

from attrs import frozen

if TYPE_CHECKING:
    from pydiverse.replication.backend.catalog import BaseCatalog


@frozen(eq=False)
class Cluster:
    """A storage cluster: a catalog plus a filesystem

    :param name: Name used in logs and as provenance tag on copies.
    :param catalog: Client of the cluster's catalog service.
    :param fs_root: URL prefix of the cluster's filesystem, e.g.
        ``hdfs://namenode:8020`` or a local directory.
    """

    name: str
    catalog: BaseCatalog
    fs_root: str

    def __str__(self):
        return self.name
