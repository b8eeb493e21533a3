# worker.py
import logging
from dataclasses import dataclass
from typing import Optional

import codec
from models import DecodeError, NotFound, Status, StorageError, WorkFailed

logger = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    executed: int = 0
    completed: int = 0
    failed: int = 0
    undecodable: int = 0
    enqueued: int = 0
    error: Optional[str] = None


class Worker:
    """Single consumer draining a Storage in id order.

    Rows left pending by a failed or undecodable command are skipped for the
    rest of the run; the cursor only moves forward, and follow-ups always get
    larger ids than the command that produced them.
    """

    def __init__(self, db, limit=None, stop_event=None):
        self.db = db
        self.limit = limit
        self.stop_event = stop_event  # threading.Event() set by a supervisor
        self._cursor = 0

    def submit(self, command):
        command.id = self.db.insert(codec.encode(command), command.status)
        logger.debug("Enqueued command %s: %s", command.id, command.describe())
        return command.id

    def run(self):
        stats = WorkerStats()
        self._cursor = 0
        while not (self.stop_event and self.stop_event.is_set()):
            if self.limit is not None and stats.executed >= self.limit:
                logger.info("Execution limit of %s reached, stopping", self.limit)
                break
            try:
                if not self._step(stats):
                    break
            except StorageError as e:
                logger.error("Storage failure, stopping worker: %s", e)
                stats.error = str(e)
                break
        logger.info(
            "Worker done: executed=%s completed=%s failed=%s undecodable=%s enqueued=%s",
            stats.executed, stats.completed, stats.failed, stats.undecodable, stats.enqueued,
        )
        return stats

    def _log_transition(self, command_id, old_state, new_state, extra=""):
        logger.info("Command %s: %s → %s %s", command_id, old_state, new_state, extra)

    def _step(self, stats):
        """Process one row. Returns False once no pending row is left."""
        fetched = self.db.fetch_oldest_pending(after_id=self._cursor)
        if fetched is None:
            return False
        command_id, encoded = fetched
        self._cursor = command_id

        try:
            command = codec.decode(encoded, command_id=command_id, status=Status.PENDING)
        except DecodeError as e:
            stats.undecodable += 1
            logger.error("Command %s left pending, cannot decode: %s", command_id, e)
            return True

        stats.executed += 1
        try:
            follow_ups = command.execute() or []
        except WorkFailed as e:
            stats.failed += 1
            self._log_transition(command_id, "pending", "pending", f"(work failed: {e})")
            return True

        for child in follow_ups:
            self.submit(child)
            stats.enqueued += 1

        try:
            self.db.complete(command_id)
        except NotFound as e:
            logger.warning("Command %s could not be completed: %s", command_id, e)
            return True
        command.mark_complete()
        stats.completed += 1
        extra = f"({command.kind}, {len(follow_ups)} follow-up(s))"
        self._log_transition(command_id, "pending", "complete", extra)
        return True
