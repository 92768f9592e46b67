"""
Key-value persistence.

:class:`KeyValueStore` is the only persistence contract the pipeline relies
on: ``get`` / ``put`` / ``delete`` of JSON-compatible values.  Each store
owns a re-entrant lock.  Read-modify-write sequences (appending a session,
allocating an id, replacing the calibration offset) must run inside
``with store.locked():`` so two callers cannot silently drop each other's
write.
"""

from __future__ import annotations

import abc
import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ppg_vitals.exceptions import DuplicateSessionError, RecordValidationError
from ppg_vitals.records import SessionRecord

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SESSIONS_KEY = "ppg_sessions"
DEFAULT_MAX_SESSIONS = 50


class KeyValueStore(abc.ABC):
    """Abstract JSON key-value store with a single-writer lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator["KeyValueStore"]:
        """Hold the store lock for a read-modify-write sequence."""
        with self._lock:
            yield self

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._get(key, default)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._put(key, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._delete(key)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @abc.abstractmethod
    def _get(self, key: str, default: Any) -> Any: ...

    @abc.abstractmethod
    def _put(self, key: str, value: Any) -> None: ...

    @abc.abstractmethod
    def _delete(self, key: str) -> None: ...


class MemoryStore(KeyValueStore):
    """Process-local store.  Values are deep-copied in and out."""

    def __init__(self) -> None:
        super().__init__()
        self._data: Dict[str, Any] = {}

    def _get(self, key: str, default: Any) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def _put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def _delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """
    All keys in one JSON document on disk.

    Writes go to a temporary sibling file which then replaces the original,
    so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise RecordValidationError(str(self.path), "store document is not a JSON object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp, self.path)

    def _get(self, key: str, default: Any) -> Any:
        return self._read_all().get(key, default)

    def _put(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


# ---------------------------------------------------------------------------
# Typed helpers
# ---------------------------------------------------------------------------

def load_record(store: KeyValueStore, key: str, model: Type[ModelT]) -> Optional[ModelT]:
    """Load and validate *key*; ``None`` if absent, :class:`RecordValidationError` if malformed."""
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise RecordValidationError(key, str(exc)) from exc


def save_record(store: KeyValueStore, key: str, record: BaseModel) -> None:
    store.put(key, record.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class SessionRepository:
    """
    Recording sessions kept as one list under a single key.

    Parameters
    ----------
    store:
        Backing store.
    max_sessions:
        Retention limit; saving beyond it drops the oldest session.
    key:
        Store key holding the session list.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        key: str = SESSIONS_KEY,
    ) -> None:
        self.store = store
        self.max_sessions = max_sessions
        self.key = key
        self._reserved: Set[str] = set()

    def list_sessions(self) -> List[SessionRecord]:
        """All stored sessions in insertion order."""
        raw = self.store.get(self.key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise RecordValidationError(self.key, "expected a list of sessions")
        try:
            return [SessionRecord.model_validate(item) for item in raw]
        except ValidationError as exc:
            raise RecordValidationError(self.key, str(exc)) from exc

    def newest_first(self) -> List[SessionRecord]:
        return sorted(self.list_sessions(), key=lambda s: s.created_at, reverse=True)

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        for session in self.list_sessions():
            if session.id == session_id:
                return session
        return None

    def save_session(self, session: SessionRecord, replace: bool = False) -> None:
        """
        Append *session*.

        With ``replace=True`` the stored session with the same id is
        replaced in place (used to back-fill vitals); it is appended if
        absent.

        Raises
        ------
        DuplicateSessionError
            ``replace`` is False and the id is already stored.
        """
        with self.store.locked():
            sessions = self.list_sessions()
            for i, existing in enumerate(sessions):
                if existing.id == session.id:
                    if not replace:
                        raise DuplicateSessionError(session.id)
                    sessions[i] = session
                    break
            else:
                sessions.append(session)
                while len(sessions) > self.max_sessions:
                    dropped = sessions.pop(0)
                    logger.info("Session limit reached; dropping session %s", dropped.id)
            self._write(sessions)
            self._reserved.discard(session.id)

    def delete_session(self, session_id: str) -> bool:
        """Remove a session; returns False if it was not stored."""
        with self.store.locked():
            sessions = self.list_sessions()
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return False
            self._write(remaining)
            return True

    def clear_all(self) -> None:
        self.store.delete(self.key)

    def next_id(self) -> str:
        """
        Zero-padded id one above the highest numeric id stored or reserved
        ("0001" first).
        """
        with self.store.locked():
            ids = [int(s.id) for s in self.list_sessions() if s.id.isdigit()]
            ids.extend(int(r) for r in self._reserved)
        return f"{(max(ids) + 1) if ids else 1:04d}"

    def reserve_id(self) -> str:
        """
        Allocate :meth:`next_id` and hold it until a session with that id is
        saved, so sessions analysed before either is saved get distinct ids.
        Reservations live in this repository object only.
        """
        with self.store.locked():
            session_id = self.next_id()
            self._reserved.add(session_id)
        return session_id

    def _write(self, sessions: List[SessionRecord]) -> None:
        self.store.put(self.key, [s.model_dump(mode="json") for s in sessions])
