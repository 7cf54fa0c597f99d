import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional

from errors import StoreError
from models import Snapshot
from notices import NoticeBoard
from security import new_session_id

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Active admin sessions, keyed by session id, holding the username."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, str] = {}

    def open(self, username: str) -> str:
        sid = new_session_id()
        with self._lock:
            self._sessions[sid] = username
        return sid

    def username(self, sid: Optional[str]) -> Optional[str]:
        if not sid:
            return None
        with self._lock:
            return self._sessions.get(sid)

    def close(self, sid: str) -> bool:
        with self._lock:
            return self._sessions.pop(sid, None) is not None

    def rename(self, old: str, new: str) -> int:
        with self._lock:
            moved = [sid for sid, name in self._sessions.items() if name == old]
            for sid in moved:
                self._sessions[sid] = new
        return len(moved)

    def close_user(self, username: str) -> int:
        with self._lock:
            closed = [sid for sid, name in self._sessions.items() if name == username]
            for sid in closed:
                del self._sessions[sid]
        return len(closed)

    def __len__(self):
        with self._lock:
            return len(self._sessions)


class AppState:
    def __init__(self, store, notices: Optional[NoticeBoard] = None,
                 sessions: Optional[SessionRegistry] = None):
        self.store = store
        self.snapshot = Snapshot()
        self.notices = notices or NoticeBoard()
        self.sessions = sessions or SessionRegistry()
        # reentrant: mutation() refreshes while holding it
        self._mutation_lock = threading.RLock()

    def refresh(self) -> Snapshot:
        """
        Reload every collection. Seeds the store first when categories and
        items are both empty. On failure the previous snapshot stays.
        """
        with self._mutation_lock:
            snapshot = self.store.fetch_snapshot()
            if not snapshot.categories and not snapshot.items:
                self.notices.post("Menginisialisasi database...", "info")
                self.store.seed()
                snapshot = self.store.fetch_snapshot()
            self.snapshot = snapshot
        logger.info("snapshot refreshed: %s", snapshot.counts())
        return snapshot

    def refresh_after_mutation(self) -> None:
        try:
            self.refresh()
        except StoreError:
            self.notices.post("Gagal memuat data dari database.", "error")

    @contextmanager
    def mutation(self):
        """
        Serialize one action's chain of remote calls and refresh once it
        completes. An exception inside the block skips the refresh.
        """
        with self._mutation_lock:
            yield self.snapshot
            self.refresh_after_mutation()
