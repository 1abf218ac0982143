import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.cancellation import CancellationToken
from core.errors import AuthExpired, Cancelled, CuratorError, TaskAlreadyRunning
from core.session import CurationSession
from services.curation_tasks import TaskResult
from utils.logging_config import get_logger

logger = get_logger("task_controller")


class TaskState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED)


class TaskController:
    """
    Runs at most one curation task at a time, across every task kind.

    Starting while a task is running is rejected, never queued. The running
    task reports monotonic progress through its session; cancel() flips the
    task's token and the task unwinds at its next suspension point. A
    terminal state (and its result) stays visible until dismiss() or the next
    start().
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="CurationTask")
        self._future: Optional[Future] = None
        self._token: Optional[CancellationToken] = None
        self._state = self._idle_state()

    @staticmethod
    def _idle_state() -> Dict[str, Any]:
        return {
            "status": TaskState.IDLE.value,
            "kind": None,
            "label": None,
            "progress": 0,
            "message": "",
            "error": None,
            "result": None,
            "created_playlists": [],
            "started_at": None,
            "finished_at": None
        }

    # --- observers ---

    @property
    def state(self) -> TaskState:
        with self._lock:
            return TaskState(self._state["status"])

    @property
    def is_running(self) -> bool:
        return self.state == TaskState.RUNNING

    def status(self) -> Dict[str, Any]:
        with self._lock:
            snapshot = dict(self._state)
            snapshot["created_playlists"] = list(self._state["created_playlists"])
            return snapshot

    def wait(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        future = self._future
        if future is not None:
            future.result(timeout=timeout)
        return self.status()

    # --- commands ---

    def start(self, kind: str, runner: Callable[..., TaskResult], session: CurationSession,
              label: Optional[str] = None, **params) -> Dict[str, Any]:
        token = CancellationToken()
        task_session = replace(
            session,
            token=token,
            progress=self._make_progress_sink(token),
            on_created=self._make_created_sink(token)
        )

        with self._lock:
            if self._state["status"] == TaskState.RUNNING.value:
                logger.warning(f"Rejected start of '{kind}', '{self._state['kind']}' is still running")
                raise TaskAlreadyRunning(self._state["kind"])

            self._token = token
            self._state = self._idle_state()
            self._state.update({
                "status": TaskState.RUNNING.value,
                "kind": kind,
                "label": label or kind,
                "message": "Starting...",
                "started_at": datetime.now().isoformat()
            })
            self._future = self._executor.submit(self._run, kind, label or kind, runner, task_session, token, params)

        logger.info(f"Started task '{kind}'")
        return self.status()

    def cancel(self) -> bool:
        with self._lock:
            if self._state["status"] != TaskState.RUNNING.value or self._token is None:
                return False
            self._token.cancel()
            self._state["message"] = "Cancelling..."
            logger.info(f"Cancellation requested for task '{self._state['kind']}'")
            return True

    def dismiss(self) -> bool:
        with self._lock:
            if self._state["status"] == TaskState.RUNNING.value:
                return False
            self._state = self._idle_state()
            self._token = None
            return True

    def shutdown(self):
        self.cancel()
        self._executor.shutdown(wait=True)

    # --- sinks handed to the running task ---

    def _make_progress_sink(self, token: CancellationToken) -> Callable[..., None]:
        def report(progress: float, message: str = ""):
            with self._lock:
                if self._token is not token or self._state["status"] != TaskState.RUNNING.value:
                    return
                clamped = max(0.0, min(100.0, float(progress)))
                self._state["progress"] = max(self._state["progress"], round(clamped, 1))
                if message and not token.cancelled:
                    self._state["message"] = message
        return report

    def _make_created_sink(self, token: CancellationToken) -> Callable[[str], None]:
        def created(playlist_id: str):
            with self._lock:
                if self._token is token:
                    self._state["created_playlists"].append(playlist_id)
        return created

    # --- worker ---

    def _finish(self, token: CancellationToken, status: TaskState, message: str,
                error: Optional[str] = None, result: Optional[Dict[str, Any]] = None,
                created_ids: Optional[List[str]] = None):
        with self._lock:
            if self._token is not token:
                return
            self._state["status"] = status.value
            self._state["message"] = message
            self._state["error"] = error
            self._state["result"] = result
            self._state["finished_at"] = datetime.now().isoformat()
            for playlist_id in created_ids or []:
                if playlist_id not in self._state["created_playlists"]:
                    self._state["created_playlists"].append(playlist_id)
            if status == TaskState.SUCCEEDED:
                self._state["progress"] = 100

    def _run(self, kind: str, label: str, runner: Callable[..., TaskResult], session: CurationSession,
             token: CancellationToken, params: Dict[str, Any]):
        try:
            result = runner(session, **params)
        except Cancelled:
            logger.info(f"Task '{kind}' cancelled")
            self._finish(token, TaskState.CANCELLED, f"{label} cancelled.")
        except AuthExpired as e:
            logger.error(f"Task '{kind}' failed, authentication expired: {e}")
            self._finish(token, TaskState.FAILED, e.user_message, error=e.user_message)
        except CuratorError as e:
            logger.error(f"Task '{kind}' failed: {e}")
            self._finish(token, TaskState.FAILED, e.user_message, error=e.user_message,
                         created_ids=getattr(e, 'created_ids', None))
        except ValueError as e:
            logger.error(f"Task '{kind}' rejected its parameters: {e}")
            self._finish(token, TaskState.FAILED, str(e), error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error in task '{kind}': {e}")
            traceback.print_exc()
            message = f"Unexpected error during {label.lower()}."
            self._finish(token, TaskState.FAILED, message, error=message)
        else:
            logger.info(f"Task '{kind}' succeeded: {result.message}")
            self._finish(token, TaskState.SUCCEEDED, result.message, result=result.to_dict(),
                         created_ids=result.playlist_ids)
