import logging
import threading
import time
from uuid import UUID, uuid4
from config import EXECUTION_IDLE_SECONDS
from logic.execution import ExecutionSession

logger = logging.getLogger(__name__)

class ExecutionRegistry: #live execution sessions of this process, keyed by an execution id handed to the client
    def __init__(self, idle_seconds: float = EXECUTION_IDLE_SECONDS, clock=time.monotonic):
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._executions: dict[UUID, tuple[ExecutionSession, float]] = {} #execution and when it was last used
        self._lock = threading.Lock() #sync endpoints run in a thread pool

    def add(self, execution: ExecutionSession) -> UUID:
        execution_id = uuid4()
        with self._lock:
            self._evict_idle()
            self._executions[execution_id] = (execution, self._clock())
        return execution_id

    def get(self, execution_id: UUID) -> ExecutionSession | None:
        with self._lock:
            self._evict_idle()
            entry = self._executions.get(execution_id)
            if entry is None:
                return None
            self._executions[execution_id] = (entry[0], self._clock())
            return entry[0]

    def discard(self, execution_id: UUID) -> bool:
        with self._lock:
            return self._executions.pop(execution_id, None) is not None

    def _evict_idle(self): #caller holds the lock
        cutoff = self._clock() - self.idle_seconds
        for execution_id, (execution, last_used) in list(self._executions.items()):
            if last_used >= cutoff:
                continue
            del self._executions[execution_id]
            if execution.is_dirty():
                logger.warning("Dropped idle execution %s of submission %s with unsaved changes", execution_id, execution.submission_id)
            else:
                logger.info("Dropped idle execution %s", execution_id)

execution_registry = ExecutionRegistry()
