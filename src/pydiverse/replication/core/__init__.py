# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

# isort: skip_file
from .object_spec import ObjectSpec
from .result import RunOutcome, RunStatus
from .locks import LockKind, LockRequirement, LockSet, required_locks
from .metadata import (
    Column,
    DatabaseMetadata,
    TableMetadata,
    PartitionMetadata,
    strip_non_comparables,
    schemas_match,
)
from .actions import MetadataAction, decide_action
from .cluster import Cluster
from .policy import (
    DestinationBuilder,
    DefaultDestinationBuilder,
    ConflictPolicy,
    LoggingConflictPolicy,
    RaisingConflictPolicy,
)
from .task import ReplicationTask, run_with_locks
from .table_task import TableReplicationTask
from .partition_task import PartitionReplicationTask
from .config import ReplicationConfig
