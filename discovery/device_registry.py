#!/usr/bin/env python3
"""
In-memory device registry, partitioned by the network address a device
registered from.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 6 * 60 * 60  # 6 hours


@dataclass(frozen=True)
class DeviceRecord:
    """A device advertised on one network"""
    id: str
    name: str
    address: str
    updated: float

    def updated_iso(self) -> str:
        stamp = datetime.fromtimestamp(self.updated, tz=timezone.utc)
        return stamp.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    def to_dict(self) -> Dict[str, str]:
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'updated': self.updated_iso()
        }


class DeviceRegistry:
    """Thread-safe map of partition key -> {device id -> DeviceRecord}.

    Records are immutable and replaced on every write, so the lists handed
    out by ``discover`` stay valid while the registry keeps changing.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._partitions: Dict[str, Dict[str, DeviceRecord]] = {}

    def register(self, partition_key: str, device_id: Optional[str],
                 name: str, address: str) -> DeviceRecord:
        """Upsert a device under ``partition_key``; ``device_id`` falls back to ``name``"""
        with self._lock:
            record = DeviceRecord(
                id=device_id or name,
                name=name,
                address=address,
                updated=self._clock()
            )
            self._partitions.setdefault(partition_key, {})[record.id] = record
        return record

    def discover(self, partition_key: str) -> List[DeviceRecord]:
        """Snapshot of the devices registered under ``partition_key``"""
        with self._lock:
            partition = self._partitions.get(partition_key)
            if not partition:
                return []
            return list(partition.values())

    def cull(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        """Drop records not updated within ``max_age`` seconds, returns how many went"""
        removed = 0
        with self._lock:
            cutoff = self._clock() - max_age
            for key in list(self._partitions):
                partition = self._partitions[key]
                stale = [device_id for device_id, record in partition.items()
                         if record.updated < cutoff]
                for device_id in stale:
                    del partition[device_id]
                removed += len(stale)
                if not partition:
                    del self._partitions[key]
        return removed

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'partitions': len(self._partitions),
                'devices': sum(len(p) for p in self._partitions.values())
            }
