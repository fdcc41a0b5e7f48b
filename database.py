"""
File-backed event store.

Two files per deployment: a JSON array holding every event record, newest
first, and a plain-text audit log with one line per record. The JSON file is
authoritative; the audit log is for tailing.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List

from schemas import EventRecord, EventStatus, new_event_id

logger = logging.getLogger(__name__)

DATA_FILE = os.getenv("BEACON_DATA_FILE", "data.json")
LOG_FILE = os.getenv("BEACON_LOG_FILE", "track.log")


class EventStore:
    """Owns the collection file and the audit log. All writes go through one lock."""

    def __init__(self, data_path: str = DATA_FILE, log_path: str = LOG_FILE):
        self.data_path = data_path
        self.log_path = log_path
        self._lock = threading.Lock()

    def initialize(self) -> None:
        for path in (self.data_path, self.log_path):
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
        with self._lock:
            if not os.path.exists(self.data_path):
                self._write_collection([])
            if not os.path.exists(self.log_path):
                open(self.log_path, "a", encoding="utf-8").close()

    def append(self, record: EventRecord) -> EventRecord:
        """
        Insert a record at the front of the collection and add its audit line.

        The collection is written before the audit log, so a crash between the
        two loses at most the audit line. OSError from either write propagates.
        """
        with self._lock:
            events = self._load()
            taken = {event.get("id") for event in events if isinstance(event, dict)}
            while record.id in taken:
                record = record.model_copy(update={"id": new_event_id()})
            events.insert(0, record.to_document())
            self._write_collection(events)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(record.audit_line() + "\n")
        return record

    def read_all(self) -> List[Dict[str, Any]]:
        # Writers replace the file atomically, so readers never see a partial one.
        return self._load()

    def reset_all(self) -> None:
        with self._lock:
            self._write_collection([])
            with open(self.log_path, "w", encoding="utf-8"):
                pass

    def stats(self) -> Dict[str, int]:
        events = self.read_all()
        counts = {status.value: 0 for status in EventStatus}
        for event in events:
            status = event.get("status") if isinstance(event, dict) else None
            if status in counts:
                counts[status] += 1
        counts["total"] = len(events)
        return counts

    def _load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.data_path):
            return []
        try:
            with open(self.data_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Error reading %s, treating as empty: %s", self.data_path, e)
            return []
        if not isinstance(data, list):
            logger.warning("%s does not hold a JSON array, treating as empty", self.data_path)
            return []
        return data

    def _write_collection(self, events: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.data_path))
        fd, tmp_path = tempfile.mkstemp(prefix=".events-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(events, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.data_path)
        except BaseException:
            _discard(tmp_path)
            raise


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


store = EventStore()


def get_store() -> EventStore:
    return store
