# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class DirectoryReconciler(ABC):
    """Compares and copies directory trees

    The reconciler owns the transport: cancellation and timeouts of long
    copies are its concern. Any failure or interruption must be raised
    (as :py:class:`~pydiverse.replication.errors.DirectoryCopyError`), never
    reported as a successful copy.
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether `path` is an existing directory"""

    @abstractmethod
    def equal(self, a: str, b: str) -> bool:
        """Whether both directory trees hold the same data

        Equality is semantic (same relative file names with the same sizes),
        not byte-for-byte. If either directory doesn't exist, the trees
        aren't equal.
        """

    @abstractmethod
    def copy(self, src: str, dst: str, tags: Sequence[str] = ()) -> int:
        """Replaces the tree at `dst` with a copy of `src`

        :param tags: Provenance information for logs and monitoring, e.g. the
            source cluster name, database and table.
        :return: Number of bytes copied.
        """

    @abstractmethod
    def move(self, src: str, dst: str):
        """Replaces the tree at `dst` by renaming `src`

        Both paths must be on the same filesystem.
        """
