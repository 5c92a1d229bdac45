from __future__ import annotations
import time
from typing import Any, Callable, Dict, List, Optional

from .curriculum import FIRST_STEP_ID
from .schemas import Message, Role
from .settings import settings


class SessionState:
    """Transient per-session data owned by one orchestrator.

    Every mutation goes through the methods below; the orchestrator is the only
    caller, one event at a time.
    """

    def __init__(self, *, duration_seconds: Optional[int] = None, clock: Callable[[], float] = time.time) -> None:
        self.duration_seconds = duration_seconds if duration_seconds is not None else settings.session_duration_seconds
        self._clock = clock
        self.active = False
        self.start_time: Optional[float] = None
        self.time_remaining: int = self.duration_seconds
        self.warning_count: int = 0
        self.last_interaction_time: float = clock()
        self.understanding_score: float = 0.0
        self.current_step: int = FIRST_STEP_ID
        self.messages: List[Message] = []

    def start_session(self) -> None:
        self.active = True
        self.start_time = self._clock()
        self.time_remaining = self.duration_seconds
        self.warning_count = 0
        self.understanding_score = 0.0
        self.current_step = FIRST_STEP_ID
        self.messages = []
        self.last_interaction_time = self.start_time

    def end_session(self) -> None:
        self.active = False
        self.start_time = None
        self.time_remaining = self.duration_seconds
        self.warning_count = 0
        self.understanding_score = 0.0
        self.current_step = FIRST_STEP_ID

    def update_time_remaining(self, seconds: int) -> None:
        self.time_remaining = seconds

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self.last_interaction_time = self._clock()

    def add(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self.add_message(message)
        return message

    def increment_warning(self) -> None:
        self.warning_count += 1

    def update_understanding_score(self, delta: float) -> None:
        self.understanding_score += delta

    def set_understanding_score(self, value: float) -> None:
        self.understanding_score = value

    def update_last_interaction_time(self) -> None:
        self.last_interaction_time = self._clock()

    def set_current_step(self, step: int) -> None:
        self.current_step = step

    def seconds_since_last_interaction(self) -> float:
        return max(0.0, self._clock() - self.last_interaction_time)

    def recent_messages(self, count: int) -> List[Message]:
        if count <= 0:
            return []
        return list(self.messages[-count:])

    def snapshot(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "start_time": self.start_time,
            "time_remaining": self.time_remaining,
            "time_display": format_time(self.time_remaining),
            "warning_count": self.warning_count,
            "last_interaction_time": self.last_interaction_time,
            "understanding_score": round(self.understanding_score, 1),
            "current_step": self.current_step,
            "messages": [m.model_dump() for m in self.messages],
        }


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"
