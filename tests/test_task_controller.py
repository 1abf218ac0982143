import threading

import pytest

from core.errors import AuthExpired, PartialFailure, TaskAlreadyRunning
from core.session import CurationSession
from services.curation_tasks import TaskResult
from services.task_controller import TaskController, TaskState

WAIT = 5


@pytest.fixture
def controller():
    controller = TaskController()
    yield controller
    controller.shutdown()


@pytest.fixture
def session():
    return CurationSession(client=None)


def blocking_runner(session, release):
    session.report(10, "Working...")
    while not release.wait(0.01):
        session.token.check()
    return TaskResult(message="Done!", playlist_ids=["pl1"])


def test_start_runs_task_to_success(controller, session):
    release = threading.Event()
    release.set()

    controller.start("top_tracks", blocking_runner, session, label="Top tracks", release=release)
    status = controller.wait(WAIT)

    assert status["status"] == TaskState.SUCCEEDED.value
    assert status["progress"] == 100
    assert status["message"] == "Done!"
    assert status["created_playlists"] == ["pl1"]
    assert status["result"]["playlist_ids"] == ["pl1"]
    assert status["finished_at"] is not None


def test_second_start_is_rejected_while_running(controller, session):
    release = threading.Event()
    controller.start("top_tracks", blocking_runner, session, release=release)

    with pytest.raises(TaskAlreadyRunning) as exc_info:
        controller.start("all_songs", blocking_runner, session, release=release)
    assert exc_info.value.running_kind == "top_tracks"
    assert controller.status()["kind"] == "top_tracks"

    release.set()
    controller.wait(WAIT)


def test_cancel_ends_in_cancelled_state(controller, session):
    release = threading.Event()
    controller.start("all_songs", blocking_runner, session, label="All songs playlist creation", release=release)

    assert controller.cancel() is True
    status = controller.wait(WAIT)

    assert status["status"] == TaskState.CANCELLED.value
    assert status["message"] == "All songs playlist creation cancelled."
    assert status["error"] is None


def test_cancel_without_running_task(controller):
    assert controller.cancel() is False


def test_progress_is_monotonic_and_clamped(controller, session):
    seen = []

    def runner(session):
        for value in (30, 10, 150, -5):
            session.report(value, f"at {value}")
            seen.append(controller.status()["progress"])
        return TaskResult(message="ok")

    controller.start("genre_scan", runner, session)
    controller.wait(WAIT)

    assert seen == [30, 30, 100, 100]


def test_expired_auth_fails_with_login_message(controller, session):
    def runner(session):
        raise AuthExpired()

    controller.start("genre_scan", runner, session)
    status = controller.wait(WAIT)

    assert status["status"] == TaskState.FAILED.value
    assert status["error"] == "Session expired, please log in again."


def test_created_playlists_survive_failure(controller, session):
    def runner(session):
        session.on_created("pl1")
        raise PartialFailure("append failed", created_ids=["pl1", "pl2"], user_message="Failed to add tracks.")

    controller.start("all_songs", runner, session)
    status = controller.wait(WAIT)

    assert status["status"] == TaskState.FAILED.value
    assert status["message"] == "Failed to add tracks."
    assert status["created_playlists"] == ["pl1", "pl2"]


def test_unexpected_error_is_reported_generically(controller, session):
    def runner(session):
        raise KeyError("boom")

    controller.start("genre_scan", runner, session, label="Genre scan")
    status = controller.wait(WAIT)

    assert status["status"] == TaskState.FAILED.value
    assert status["error"] == "Unexpected error during genre scan."


def test_dismiss_only_after_terminal_state(controller, session):
    release = threading.Event()
    controller.start("top_tracks", blocking_runner, session, release=release)

    assert controller.dismiss() is False

    release.set()
    controller.wait(WAIT)
    assert controller.dismiss() is True
    assert controller.status()["status"] == TaskState.IDLE.value
    assert controller.status()["created_playlists"] == []


def test_new_task_can_start_after_terminal_state(controller, session):
    def failing(session):
        raise ValueError("bad params")

    controller.start("genre_fusion", failing, session)
    assert controller.wait(WAIT)["error"] == "bad params"

    release = threading.Event()
    release.set()
    controller.start("top_tracks", blocking_runner, session, release=release)
    assert controller.wait(WAIT)["status"] == TaskState.SUCCEEDED.value


def test_each_run_gets_a_fresh_token(controller, session):
    tokens = []

    def runner(session):
        tokens.append(session.token)
        return TaskResult(message="ok")

    controller.start("genre_scan", runner, session)
    controller.wait(WAIT)
    controller.start("genre_scan", runner, session)
    controller.wait(WAIT)

    assert tokens[0] is not tokens[1]
    assert tokens[0] is not session.token
