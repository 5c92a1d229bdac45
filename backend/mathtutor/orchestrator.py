from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .backends import TutorBackend
from .curriculum import next_step_id
from .schemas import NEUTRAL_SCORE, START_SESSION, Evaluation, Message, Verdict
from .session_state import SessionState
from .settings import settings

logger = logging.getLogger(__name__)


GREETING_FAILED = "Failed to start session. Please try again."
TURN_FAILED = "Sorry, there was an error processing your request."
POSITIVE_FEEDBACK = "👍 Good thinking!"
NEGATIVE_FEEDBACK = "🤔 Let's clarify this."
TERMINATION_NOTICE = (
    "Your session has been terminated due to multiple policy violations. "
    "This incident will be reported and reviewed."
)

# End reasons
TIMEOUT = "timeout"
TERMINATED = "terminated"
ENDED = "ended"
RESTARTED = "restarted"


@dataclass
class SessionPolicy:
    context_window: int = 5
    termination_severity: int = 3
    score_mode: str = "additive"
    show_termination_notice: bool = True

    @classmethod
    def from_settings(cls) -> "SessionPolicy":
        return cls(
            context_window=settings.context_window,
            termination_severity=settings.termination_severity,
            score_mode=settings.score_mode,
            show_termination_notice=settings.show_termination_notice,
        )


@dataclass
class SessionSummary:
    reason: str
    understanding_score: float
    warning_count: int
    current_step: int
    started_at: Optional[float]
    ended_at: float
    messages: List[Message]


@dataclass
class Turn:
    text: str
    context: List[Message]


# ---- Events ----

@dataclass
class Start:
    pass


@dataclass
class Restart:
    pass


@dataclass
class End:
    reason: str = ENDED


@dataclass
class Tick:
    seconds: int = 1


@dataclass
class Submit:
    text: str


@dataclass
class GreetingReady:
    epoch: int
    reply: str


@dataclass
class VerdictReady:
    epoch: int
    turn: Turn
    verdict: Verdict


@dataclass
class ReplyReady:
    epoch: int
    turn: Turn
    reply: str


@dataclass
class EvaluationReady:
    epoch: int
    turn: Turn
    evaluation: Evaluation


@dataclass
class RequestFailed:
    epoch: int
    stage: str
    error: BaseException = field(repr=False)


class TurnOrchestrator:
    """Single consumer of every event that touches a session.

    Ticks, submissions and backend results all go through one queue and are
    handled in arrival order. Backend calls run as tasks that only post result
    events back; each result carries the epoch it was issued under and is
    dropped if the session has ended or restarted since.
    """

    def __init__(
        self,
        state: SessionState,
        backend: TutorBackend,
        *,
        policy: Optional[SessionPolicy] = None,
        on_session_end: Optional[Callable[[SessionSummary], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state
        self.backend = backend
        self.policy = policy or SessionPolicy.from_settings()
        self.on_session_end = on_session_end
        self.epoch = 0
        self.end_reason: Optional[str] = None
        self.ended_at: Optional[float] = None
        self._clock = clock
        self._clock_mark = clock()
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._inflight: Set[asyncio.Task] = set()

    # ---- Public surface ----

    def post(self, event: Any) -> None:
        self._queue.put_nowait(event)

    def start(self) -> None:
        self.post(Start())

    def restart(self) -> None:
        self.post(Restart())

    def end(self, reason: str = ENDED) -> None:
        self.post(End(reason))

    def tick(self, seconds: int = 1) -> None:
        self.post(Tick(seconds))

    def submit(self, text: str) -> None:
        self.post(Submit(text))

    def advance_clock(self) -> None:
        """Post a Tick covering the whole seconds elapsed since the last sync."""
        now = self._clock()
        if not self.state.active:
            self._clock_mark = now
            return
        whole = int(now - self._clock_mark)
        if whole > 0:
            self._clock_mark += whole
            self.post(Tick(whole))

    async def run(self) -> None:
        while True:
            event = await self._queue.get()
            self.handle(event)

    async def run_clock(self, interval: float = 1.0) -> None:
        while True:
            await asyncio.sleep(interval)
            self.post(Tick(1))

    async def settle(self) -> None:
        """Handle queued events until nothing is queued or in flight."""
        while True:
            while not self._queue.empty():
                self.handle(self._queue.get_nowait())
            pending = {t for t in self._inflight if not t.done()}
            if not pending:
                if self._queue.empty():
                    return
                continue
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

    @property
    def status(self) -> str:
        if self.state.active:
            return "active"
        if self.end_reason == TERMINATED and self.policy.show_termination_notice:
            return "terminated"
        return "idle"

    def snapshot(self) -> Dict[str, Any]:
        data = self.state.snapshot()
        data["status"] = self.status
        data["end_reason"] = self.end_reason
        if self.status == "terminated":
            data["notice"] = TERMINATION_NOTICE
        return data

    def seconds_since_end(self) -> Optional[float]:
        """Clock seconds since the last session finished, None while one is running."""
        if self.state.active or self.ended_at is None:
            return None
        return self._clock() - self.ended_at

    # ---- Event handling ----

    def handle(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown event {event!r}")
        handler(self, event)

    def _on_start(self, event: Start) -> None:
        if self.state.active:
            logger.info("Start ignored, session already active")
            return
        self._begin()

    def _on_restart(self, event: Restart) -> None:
        if self.state.active:
            self._finish(RESTARTED)
        self._begin()

    def _on_end(self, event: End) -> None:
        if self.state.active:
            self._finish(event.reason)

    def _on_tick(self, event: Tick) -> None:
        if not self.state.active:
            return
        remaining = max(0, self.state.time_remaining - event.seconds)
        self.state.update_time_remaining(remaining)
        if remaining <= 0:
            logger.info("Session timed out")
            self._finish(TIMEOUT)

    def _on_submit(self, event: Submit) -> None:
        text = (event.text or "").strip()
        if not self.state.active or not text:
            return
        turn = Turn(text=text, context=self.state.recent_messages(self.policy.context_window))
        elapsed = self.state.seconds_since_last_interaction()
        warning_count = self.state.warning_count
        self.state.add("user", text)
        logger.debug("User input: %s", text)
        self._spawn(
            "guardrail",
            lambda: self.backend.check_safety(text, elapsed, warning_count),
            lambda epoch, verdict: VerdictReady(epoch, turn, verdict),
        )

    def _on_greeting(self, event: GreetingReady) -> None:
        if not self._is_current(event):
            return
        self.state.add("assistant", event.reply)

    def _on_verdict(self, event: VerdictReady) -> None:
        if not self._is_current(event):
            return
        verdict = event.verdict
        if not verdict.safe:
            self.state.add("system", verdict.warning or "Please keep the conversation on math.")
            self.state.increment_warning()
            logger.info("Guardrail warning %d (severity %s)", self.state.warning_count, verdict.severity)
            if verdict.severity >= self.policy.termination_severity:
                self._finish(TERMINATED)
            return
        turn = event.turn
        self._spawn(
            "tutor",
            lambda: self.backend.respond(turn.text, turn.context),
            lambda epoch, reply: ReplyReady(epoch, turn, reply),
        )

    def _on_reply(self, event: ReplyReady) -> None:
        if not self._is_current(event):
            return
        self.state.add("assistant", event.reply)
        turn = event.turn
        step = self.state.current_step
        self._spawn(
            "evaluator",
            lambda: self.backend.evaluate(turn.text, turn.context, step),
            lambda epoch, evaluation: EvaluationReady(epoch, turn, evaluation),
        )

    def _on_evaluation(self, event: EvaluationReady) -> None:
        if not self._is_current(event):
            return
        evaluation = event.evaluation
        if evaluation.score is None:
            return
        delta = evaluation.score - NEUTRAL_SCORE
        # "additive" sums raw 1-5 scores, so the total only grows; feedback still keys off the neutral 3
        if self.policy.score_mode == "absolute":
            self.state.set_understanding_score(evaluation.score)
        elif self.policy.score_mode == "delta":
            self.state.update_understanding_score(delta)
        else:
            self.state.update_understanding_score(evaluation.score)
        if delta != 0:
            self.state.add("system", evaluation.feedback or (POSITIVE_FEEDBACK if delta > 0 else NEGATIVE_FEEDBACK))
        if evaluation.proceed:
            self.state.set_current_step(next_step_id(self.state.current_step))

    def _on_failure(self, event: RequestFailed) -> None:
        if not self._is_current(event):
            return
        self.state.add("system", GREETING_FAILED if event.stage == "greeting" else TURN_FAILED)

    _handlers: Dict[type, Callable[["TurnOrchestrator", Any], None]] = {
        Start: _on_start,
        Restart: _on_restart,
        End: _on_end,
        Tick: _on_tick,
        Submit: _on_submit,
        GreetingReady: _on_greeting,
        VerdictReady: _on_verdict,
        ReplyReady: _on_reply,
        EvaluationReady: _on_evaluation,
        RequestFailed: _on_failure,
    }

    # ---- Internals ----

    def _is_current(self, event: Any) -> bool:
        if event.epoch != self.epoch or not self.state.active:
            logger.info("Discarding %s from epoch %d (current %d)", type(event).__name__, event.epoch, self.epoch)
            return False
        return True

    def _begin(self) -> None:
        self.epoch += 1
        self.end_reason = None
        self.ended_at = None
        self.state.start_session()
        self._clock_mark = self._clock()
        logger.info("Session started (epoch %d)", self.epoch)
        self._spawn(
            "greeting",
            lambda: self.backend.respond(START_SESSION, []),
            lambda epoch, reply: GreetingReady(epoch, reply),
        )

    def _finish(self, reason: str) -> None:
        summary = SessionSummary(
            reason=reason,
            understanding_score=self.state.understanding_score,
            warning_count=self.state.warning_count,
            current_step=self.state.current_step,
            started_at=self.state.start_time,
            ended_at=time.time(),
            messages=list(self.state.messages),
        )
        self.state.end_session()
        self.epoch += 1
        self.end_reason = reason
        self.ended_at = self._clock()
        logger.info("Session ended: %s", reason)
        if self.on_session_end is not None:
            self.on_session_end(summary)

    def _spawn(
        self,
        stage: str,
        call: Callable[[], Awaitable[Any]],
        to_event: Callable[[int, Any], Any],
    ) -> None:
        epoch = self.epoch

        async def runner() -> None:
            try:
                result = await call()
            except Exception as exc:
                logger.exception("%s request failed", stage)
                self.post(RequestFailed(epoch, stage, exc))
            else:
                self.post(to_event(epoch, result))

        task = asyncio.create_task(runner())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
