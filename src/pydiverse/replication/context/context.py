# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import threading
from contextvars import ContextVar, Token
from functools import cached_property
from threading import Lock
from typing import TYPE_CHECKING, ClassVar, TypeVar

from attrs import frozen
from box import Box

from pydiverse.replication.core.cluster import Cluster
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.errors import ConfigError
from pydiverse.replication.util.import_ import load_object

if TYPE_CHECKING:
    from pydiverse.replication.backend.directory import DirectoryReconciler
    from pydiverse.replication.backend.lock import BaseLockManager
    from pydiverse.replication.context.trace_hook import TraceHook
    from pydiverse.replication.core.partition_task import PartitionReplicationTask
    from pydiverse.replication.core.policy import ConflictPolicy, DestinationBuilder
    from pydiverse.replication.core.table_task import TableReplicationTask
    from pydiverse.replication.core.task import ReplicationTask

T = TypeVar("T")


class BaseContext:
    _context_var: ClassVar[ContextVar]
    _lock: Lock = Lock()
    _thread_state: dict[int, list[Token]] = {}
    _instance_state: dict[int, int] = {}

    def __enter__(self):
        with self._lock:
            _id = id(self) + (threading.get_ident() << 64)
            if _id not in self._thread_state:
                self._thread_state[_id] = []
            _tokens = self._thread_state[_id]
            token = self._context_var.set(self)
            _tokens.append(token)
            if id(self) not in self._instance_state:
                self._instance_state[id(self)] = 0
            # count threads that entered this context object
            self._instance_state[id(self)] += 1
        return self

    def __exit__(self, *_):
        with self._lock:
            _id = id(self) + (threading.get_ident() << 64)
            _tokens = self._thread_state[_id]
            self._context_var.reset(_tokens.pop())
            if len(_tokens) == 0:
                del self._thread_state[_id]
            self._instance_state[id(self)] -= 1
            if self._instance_state[id(self)] == 0:
                # in case of multi-threading, only close objects once
                del self._instance_state[id(self)]
                self._close()

    def _close(self):
        """Function that gets called at __exit__"""

    @classmethod
    def get(cls: type[T]) -> T:
        """Returns the current, innermost context instance.

        :raises LookupError: If no such context has been entered yet.
        """
        return cls._context_var.get()


@frozen(slots=False)
class ConfigContext(BaseContext):
    """Configuration context of one replication instance

    To create a `ConfigContext` instance use :py:meth:`ReplicationConfig.get`.

    The backend objects (catalogs, directory reconciler, policies, trace hook)
    get created on first access and are shared by all tasks built from this
    context. Catalogs get disposed when the outermost ``with`` block of the
    context exits.

    Attributes
    ----------
    config_name :
        Name of the config file.
    instance_name :
        Name of the instance used for instantiating this config.
    instance_id :
        Identifier of the instance, used e.g. to namespace locks.
    allow_data_copy :
        Whether tasks may copy bulk data.
    optimistic_copy_root :
        Root below which data may have been staged in advance.
    attrs :
        Values from the ``attrs`` config section, stored in a ``Box`` object.
    """

    _config_dict: dict

    config_name: str | None
    instance_name: str | None
    instance_id: str
    allow_data_copy: bool
    optimistic_copy_root: str | None
    attrs: Box

    _context_var = ContextVar("config_context")

    def _load(self, section: str):
        try:
            return load_object(self._config_dict[section])
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Failed loading {section}") from e

    def _load_cluster(self, section: str) -> Cluster:
        config = self._config_dict[section]
        try:
            catalog = load_object(config["catalog"])
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"Failed loading catalog of {section}") from e
        return Cluster(name=config["name"], catalog=catalog, fs_root=config["fs_root"])

    @cached_property
    def source_cluster(self) -> Cluster:
        return self._load_cluster("source")

    @cached_property
    def destination_cluster(self) -> Cluster:
        return self._load_cluster("destination")

    @cached_property
    def directory_reconciler(self) -> DirectoryReconciler:
        return self._load("directory_reconciler")

    @cached_property
    def destination_builder(self) -> DestinationBuilder:
        return self._load("destination_builder")

    @cached_property
    def conflict_policy(self) -> ConflictPolicy:
        return self._load("conflict_policy")

    @cached_property
    def trace_hook(self) -> TraceHook:
        return self._load("trace_hook")

    def create_lock_manager(self) -> BaseLockManager:
        with self:  # lock managers may read the instance id from the context
            return self._load("lock_manager")

    def _task_kwargs(self) -> dict:
        return dict(
            directory_reconciler=self.directory_reconciler,
            destination_builder=self.destination_builder,
            conflict_policy=self.conflict_policy,
            allow_data_copy=self.allow_data_copy,
            optimistic_copy_root=self.optimistic_copy_root,
            trace_hook=self.trace_hook,
        )

    def partition_task(self, spec: ObjectSpec | str) -> PartitionReplicationTask:
        from pydiverse.replication.core.partition_task import (
            PartitionReplicationTask,
        )

        return PartitionReplicationTask(
            self.source_cluster,
            self.destination_cluster,
            _as_spec(spec),
            **self._task_kwargs(),
        )

    def table_task(
        self, spec: ObjectSpec | str, location_hint: str | None = None
    ) -> TableReplicationTask:
        from pydiverse.replication.core.table_task import TableReplicationTask

        return TableReplicationTask(
            self.source_cluster,
            self.destination_cluster,
            _as_spec(spec),
            location_hint=location_hint,
            **self._task_kwargs(),
        )

    def task_for(self, spec: ObjectSpec | str) -> ReplicationTask:
        """Partition task for partition specs, table task otherwise"""
        spec = _as_spec(spec)
        if spec.is_partition:
            return self.partition_task(spec)
        return self.table_task(spec)

    def _close(self):
        # Only dispose catalogs that have been created (cached in __dict__)
        for name in ("source_cluster", "destination_cluster"):
            if cluster := self.__dict__.pop(name, None):
                cluster.catalog.dispose()


def _as_spec(spec: ObjectSpec | str) -> ObjectSpec:
    if isinstance(spec, str):
        return ObjectSpec.parse(spec)
    return spec
