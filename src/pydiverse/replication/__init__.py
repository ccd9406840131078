# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

# In order to avoid circular dependencies, we use the following import order:
# - Core data types and tasks
# - Contexts
# - Backends

# isort: skip_file
from .core import (
    Cluster,
    LockKind,
    LockRequirement,
    LockSet,
    MetadataAction,
    ObjectSpec,
    PartitionReplicationTask,
    ReplicationConfig,
    ReplicationTask,
    RunOutcome,
    RunStatus,
    TableReplicationTask,
    run_with_locks,
)
from .context import ConfigContext
from . import backend

__all__ = [
    "Cluster",
    "ConfigContext",
    "LockKind",
    "LockRequirement",
    "LockSet",
    "MetadataAction",
    "ObjectSpec",
    "PartitionReplicationTask",
    "ReplicationConfig",
    "ReplicationTask",
    "RunOutcome",
    "RunStatus",
    "TableReplicationTask",
    "backend",
    "run_with_locks",
]
