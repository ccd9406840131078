# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from attrs import field, frozen

from pydiverse.replication.errors import ConfigError
from pydiverse.replication.util.import_ import load_object

if TYPE_CHECKING:
    from pydiverse.replication.core.object_spec import ObjectSpec


class EventKind(str, Enum):
    """Decision branches and mutations of a replication task"""

    # preconditions
    SOURCE_MISSING = "source_missing"
    TABLE_CASCADE = "table_cascade"
    TABLE_CASCADE_FAILED = "table_cascade_failed"
    DESTINATION_EXISTS = "destination_exists"

    # data reconciliation
    DATA_LOCATION_SHARED = "data_location_shared"
    STAGED_DATA_MOVED = "staged_data_moved"
    STAGED_DATA_MISMATCH = "staged_data_mismatch"
    DATA_UP_TO_DATE = "data_up_to_date"
    DATA_COPY_DISALLOWED = "data_copy_disallowed"
    SOURCE_PATH_MISSING = "source_path_missing"
    DATA_COPIED = "data_copied"
    DATA_COPY_FAILED = "data_copy_failed"

    # metadata
    DATABASE_CREATED = "database_created"
    METADATA_CREATED = "metadata_created"
    METADATA_ALTERED = "metadata_altered"
    METADATA_UNCHANGED = "metadata_unchanged"

    TASK_COMPLETE = "task_complete"

    def __str__(self):
        return self.value


_WARNING_EVENTS = {
    EventKind.DATA_COPY_FAILED,
    EventKind.SOURCE_MISSING,
    EventKind.TABLE_CASCADE,
    EventKind.TABLE_CASCADE_FAILED,
    EventKind.DATA_COPY_DISALLOWED,
    EventKind.SOURCE_PATH_MISSING,
}
_INFO_EVENTS = {
    EventKind.STAGED_DATA_MOVED,
    EventKind.DATA_COPIED,
    EventKind.DATABASE_CREATED,
    EventKind.METADATA_CREATED,
    EventKind.METADATA_ALTERED,
    EventKind.TASK_COMPLETE,
}


@frozen
class TraceEvent:
    kind: EventKind
    spec: ObjectSpec
    details: dict[str, Any] = field(factory=dict)


class TraceHook:
    """Observer of replication tasks

    A task calls :py:meth:`event` once for every decision branch it takes and
    once for every mutation of the destination. Hooks must not raise.
    """

    def event(self, event: TraceEvent):
        pass


class PrintTraceHook(TraceHook):
    """Logs every event with structlog

    Events of tasks that can't complete are logged as warnings at most; they
    are expected outcomes of racing with concurrent changes on the source.
    """

    def __init__(self):
        self.logger = structlog.get_logger(logger_name=type(self).__name__)

    def event(self, event: TraceEvent):
        if event.kind in _WARNING_EVENTS:
            level = logging.WARNING
        elif event.kind in _INFO_EVENTS:
            level = logging.INFO
        else:
            level = logging.DEBUG
        self.logger.log(level, str(event.kind), spec=str(event.spec), **event.details)


class RecordingTraceHook(TraceHook):
    """Collects all events in memory, e.g. to assert on them in tests"""

    def __init__(self):
        self.events: list[TraceEvent] = []
        self.__lock = threading.Lock()

    def event(self, event: TraceEvent):
        with self.__lock:
            self.events.append(event)

    def kinds(self, spec: ObjectSpec | None = None) -> list[EventKind]:
        return [e.kind for e in self.events if spec is None or e.spec == spec]

    def of_kind(self, kind: EventKind) -> list[TraceEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self):
        with self.__lock:
            self.events.clear()


class MultiTraceHook(TraceHook):
    """Forwards each event to several hooks

    Config File
    -----------
    :param hooks:
        List of trace hook sections, each with its own ``class`` and ``args``.
        ::

            trace_hook:
              class: pydiverse.replication.context.trace_hook.MultiTraceHook
              args:
                hooks:
                  - class: pydiverse.replication.context.trace_hook.PrintTraceHook
                  - class: my_monitoring.MetricsTraceHook
    """

    @classmethod
    def _init_conf_(cls, config: dict[str, Any]):
        hooks = config.get("hooks") or []
        if not isinstance(hooks, list):
            raise ConfigError(
                f"'hooks' must be a list of trace hook sections: {hooks}"
            )
        return cls(*(load_object(hook) for hook in hooks))

    def __init__(self, *hooks: TraceHook):
        self.hooks = list(hooks)

    def event(self, event: TraceEvent):
        for hook in self.hooks:
            hook.event(event)
