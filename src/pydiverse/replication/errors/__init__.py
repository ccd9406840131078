# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause


class ReplicationError(Exception):
    """
    Base class for all exceptions raised by pydiverse.replication.
    """


class CatalogError(ReplicationError):
    """
    Exception raised if the catalog service can't be reached, fails, or rejects
    a mutation (e.g. adding an object that already exists).

    An object that simply doesn't exist is never reported with this exception;
    catalog lookups return ``None`` instead.
    """


class DirectoryCopyError(ReplicationError):
    """
    Exception raised if copying or moving a directory tree fails.
    """


class ReplicationConflictError(ReplicationError):
    """
    Exception raised by a conflict policy if an object on the destination
    wasn't created by replicating from the expected source cluster.
    """


class LockError(ReplicationError):
    """
    Exception raised if something goes wrong while locking, for example if
    a lock expires before it has been released.
    """


class ConfigError(ReplicationError):
    """
    Exception raised if the replication configuration is invalid.
    """


class DisposedError(Exception):
    """
    Exception raised when an object has been used after being disposed.
    """


__all__ = [
    "ReplicationError",
    "CatalogError",
    "DirectoryCopyError",
    "ReplicationConflictError",
    "LockError",
    "ConfigError",
    "DisposedError",
]
