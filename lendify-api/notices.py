import os
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Literal, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

NOTICE_TTL_SECONDS = float(os.getenv("NOTICE_TTL_SECONDS", "5"))

NoticeType = Literal["success", "error", "warning", "info"]


class Notice(BaseModel):
    id: str
    message: str
    type: NoticeType = "info"
    created_at: datetime
    undoable: bool = False


class NoticeBoard:
    def __init__(self, ttl_seconds: float = NOTICE_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._notices: Dict[str, Notice] = {}
        self._undo: Dict[str, Callable[[], None]] = {}

    def post(self, message: str, type: NoticeType = "info",
             undo: Optional[Callable[[], None]] = None, now: Optional[datetime] = None) -> Notice:
        notice = Notice(
            id=uuid.uuid4().hex[:12],
            message=message,
            type=type,
            created_at=now or datetime.now(timezone.utc),
            undoable=undo is not None,
        )
        with self._lock:
            self._expire(notice.created_at)
            self._notices[notice.id] = notice
            if undo is not None:
                self._undo[notice.id] = undo
        return notice

    def _expire(self, now: datetime) -> None:
        stale = [n.id for n in self._notices.values() if now - n.created_at >= self.ttl]
        for nid in stale:
            self._notices.pop(nid, None)
            self._undo.pop(nid, None)

    def __len__(self):
        with self._lock:
            return len(self._notices)

    def active(self, now: Optional[datetime] = None) -> List[Notice]:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._expire(now)
            return sorted(self._notices.values(), key=lambda n: n.created_at)

    def dismiss(self, notice_id: str) -> bool:
        with self._lock:
            self._undo.pop(notice_id, None)
            return self._notices.pop(notice_id, None) is not None

    def undo(self, notice_id: str, now: Optional[datetime] = None) -> bool:
        """Run the notice's undo action once. False when expired or not undoable."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._expire(now)
            action = self._undo.pop(notice_id, None)
            if action is None:
                return False
            notice = self._notices.pop(notice_id)
        logger.info("undo requested for notice %s", notice_id)
        try:
            action()
        except Exception:
            # nothing was restored; the notice can be undone again
            with self._lock:
                self._notices[notice.id] = notice
                self._undo[notice.id] = action
            raise
        return True
