import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Deque, Iterator, List

from .config import MAX_ALERT_HISTORY, Settings
from .schemas import AlertRecord, LiveStatus, RemoteConfig
from .storage import CaptureStore

LOST_CONNECTION_MODE = "Lost Connection"


class RWLock:
    """Many concurrent readers, or a single writer.

    Waiting writers block new readers so a steady stream of reads cannot starve them.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def default_config(settings: Settings) -> RemoteConfig:
    return RemoteConfig(
        max_temp_trigger=settings.max_temp_trigger,
        scan_wait_time_sec=settings.scan_wait_time_sec,
        system_enabled=True,
        pan_step_degrees=settings.pan_step_degrees,
        api_key=None,
    )


def initial_status() -> LiveStatus:
    return LiveStatus(
        last_update=0,
        turbine_token="N/A",
        mode="Disconnected",
        current_angle=0.0,
        current_max_temp=0.0,
        is_online=False,
    )


class StateStore:
    """Current RemoteConfig and LiveStatus, each behind its own RWLock."""

    def __init__(
        self,
        config: RemoteConfig,
        status: LiveStatus,
        staleness_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._status = status
        self._config_lock = RWLock()
        self._status_lock = RWLock()
        self.staleness_seconds = staleness_seconds
        self.clock = clock

    def get_config(self) -> RemoteConfig:
        with self._config_lock.read():
            return self._config.model_copy()

    def set_config(self, new: RemoteConfig) -> None:
        with self._config_lock.write():
            self._config = new.model_copy()

    def get_status(self) -> LiveStatus:
        """Stored status, reported offline once the last heartbeat is stale.

        The stored record is left untouched; only the returned copy changes.
        """
        with self._status_lock.read():
            status = self._status.model_copy()
        if self.clock() - status.last_update > self.staleness_seconds:
            return status.model_copy(update={"is_online": False, "mode": LOST_CONNECTION_MODE})
        return status

    def set_status(self, new: LiveStatus) -> LiveStatus:
        stamped = new.model_copy(update={"last_update": int(self.clock()), "is_online": True})
        with self._status_lock.write():
            self._status = stamped
        return stamped.model_copy()


class AlertRing:
    """Newest-first alert history capped at ``capacity`` records."""

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._records: Deque[AlertRecord] = deque(maxlen=capacity)
        self._lock = RWLock()

    def push_front(self, record: AlertRecord) -> None:
        # appendleft on a bounded deque drops the oldest entry in the same step.
        with self._lock.write():
            self._records.appendleft(record)

    def list(self) -> List[AlertRecord]:
        with self._lock.read():
            return list(self._records)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)


@dataclass
class CloudState:
    """Everything the service keeps for one process lifetime."""

    settings: Settings
    store: StateStore
    alerts: AlertRing
    captures: CaptureStore

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "CloudState":
        return cls(
            settings=settings,
            store=StateStore(
                config=default_config(settings),
                status=initial_status(),
                staleness_seconds=settings.staleness_seconds,
                clock=clock,
            ),
            alerts=AlertRing(min(settings.alert_history_limit, MAX_ALERT_HISTORY)),
            captures=CaptureStore(settings.storage_dir),
        )
