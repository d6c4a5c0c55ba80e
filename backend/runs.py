# runs.py
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Tuple

from errors import Busy, NotFound
from quiz_engine import QuizEngine


@dataclass
class QuizRun:
    run_id: str
    session_id: str
    user_id: str
    engine: QuizEngine
    lock: threading.Lock = field(default_factory=threading.Lock)


class RunRegistry:
    """In-memory quiz runs. Starting a run replaces the user's previous run on that session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, QuizRun] = {}
        self._latest: Dict[Tuple[str, str], str] = {}

    def start(self, user_id: str, session_id: str, engine: QuizEngine) -> QuizRun:
        run = QuizRun(run_id=uuid.uuid4().hex, session_id=session_id, user_id=user_id, engine=engine)
        with self._lock:
            previous = self._latest.get((user_id, session_id))
            if previous:
                self._runs.pop(previous, None)
            self._runs[run.run_id] = run
            self._latest[(user_id, session_id)] = run.run_id
        return run

    def get(self, user_id: str, run_id: str) -> QuizRun:
        with self._lock:
            run = self._runs.get(run_id)
        if not run or run.user_id != user_id:
            raise NotFound("Quiz run not found")
        return run

    def drop_session(self, session_id: str) -> None:
        with self._lock:
            for key in [k for k in self._latest if k[1] == session_id]:
                self._runs.pop(self._latest.pop(key), None)


class AnalysisGuard:
    """Allows one outstanding analysis per user."""

    def __init__(self):
        self._lock = threading.Lock()
        self._busy = set()

    @contextmanager
    def hold(self, user_id: str):
        with self._lock:
            if user_id in self._busy:
                raise Busy("An analysis is already running for this account.")
            self._busy.add(user_id)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(user_id)
