"""Cooking session transitions.

``transition(state, event)`` is pure: it returns the next state and the list
of effects the controller must carry out (speak, listen, run the timer). Only
one driver is active per phase, so every transition that leaves a phase first
emits the effect that releases that phase's driver.
"""
from dataclasses import dataclass, replace
from typing import List, Tuple, Union

from models.schemas import SessionPhase, TasteRating

ACTIVE_PHASES = (SessionPhase.SPEAKING, SessionPhase.WAITING_FOR_START, SessionPhase.TIMER_RUNNING)


@dataclass(frozen=True)
class SessionState:
    durations: Tuple[int, ...] = ()
    phase: SessionPhase = SessionPhase.IDLE
    step_index: int = 0
    remaining_seconds: int = 0
    listener_active: bool = False
    completion_announced: bool = False
    rating_prompt_pending: bool = False
    generation: int = 0

    @property
    def total_steps(self) -> int:
        return len(self.durations)

    @property
    def current_duration(self) -> int:
        if self.step_index < self.total_steps:
            return self.durations[self.step_index]
        return 0


# Events

@dataclass(frozen=True)
class StartCooking:
    pass


@dataclass(frozen=True)
class NarrationFinished:
    generation: int


@dataclass(frozen=True)
class StartCommand:
    pass


@dataclass(frozen=True)
class TimerTicked:
    remaining: int
    generation: int


@dataclass(frozen=True)
class TimerFinished:
    generation: int


@dataclass(frozen=True)
class SkipStep:
    pass


@dataclass(frozen=True)
class RestartTimer:
    pass


@dataclass(frozen=True)
class RestartRecipe:
    pass


@dataclass(frozen=True)
class StopCooking:
    pass


@dataclass(frozen=True)
class RatingSubmitted:
    rating: TasteRating


@dataclass(frozen=True)
class RatingDeclined:
    pass


Event = Union[
    StartCooking, NarrationFinished, StartCommand, TimerTicked, TimerFinished, SkipStep,
    RestartTimer, RestartRecipe, StopCooking, RatingSubmitted, RatingDeclined,
]


# Effects

@dataclass(frozen=True)
class NarrateStep:
    step_index: int
    generation: int
    delayed: bool = False


@dataclass(frozen=True)
class NarrateCompletion:
    generation: int


@dataclass(frozen=True)
class CancelSpeech:
    pass


@dataclass(frozen=True)
class StartListener:
    pass


@dataclass(frozen=True)
class StopListener:
    pass


@dataclass(frozen=True)
class StartTimer:
    seconds: int
    generation: int


@dataclass(frozen=True)
class CancelTimer:
    pass


@dataclass(frozen=True)
class RecordRating:
    rating: TasteRating


Effect = Union[
    NarrateStep, NarrateCompletion, CancelSpeech, StartListener, StopListener,
    StartTimer, CancelTimer, RecordRating,
]

Transition = Tuple[SessionState, List[Effect]]


def initial_state(durations: Tuple[int, ...] = ()) -> SessionState:
    return SessionState(durations=tuple(durations))


def _release(state: SessionState) -> List[Effect]:
    """Effects that stop whichever driver owns the current phase."""
    if state.phase == SessionPhase.SPEAKING:
        return [CancelSpeech()]
    if state.phase == SessionPhase.WAITING_FOR_START:
        return [StopListener()]
    if state.phase == SessionPhase.TIMER_RUNNING:
        return [CancelTimer()]
    return []


def _release_all() -> List[Effect]:
    return [CancelSpeech(), StopListener(), CancelTimer()]


def _begin(state: SessionState) -> Transition:
    generation = state.generation + 1
    new_state = replace(
        state,
        phase=SessionPhase.SPEAKING,
        step_index=0,
        remaining_seconds=state.durations[0] if state.durations else 0,
        listener_active=False,
        completion_announced=False,
        rating_prompt_pending=False,
        generation=generation,
    )
    return new_state, [NarrateStep(0, generation)]


def _advance(state: SessionState) -> Transition:
    generation = state.generation + 1
    next_index = state.step_index + 1
    if next_index >= state.total_steps:
        effects: List[Effect] = []
        if not state.completion_announced:
            effects.append(NarrateCompletion(generation))
        new_state = replace(
            state,
            phase=SessionPhase.COMPLETE,
            step_index=state.total_steps,
            remaining_seconds=0,
            listener_active=False,
            completion_announced=True,
            rating_prompt_pending=True,
            generation=generation,
        )
        return new_state, effects

    new_state = replace(
        state,
        phase=SessionPhase.SPEAKING,
        step_index=next_index,
        remaining_seconds=state.durations[next_index],
        listener_active=False,
        generation=generation,
    )
    return new_state, [NarrateStep(next_index, generation, delayed=True)]


def transition(state: SessionState, event: Event) -> Transition:
    """Apply ``event`` to ``state``. Events that do not apply are ignored."""
    phase = state.phase

    if isinstance(event, StartCooking):
        if phase != SessionPhase.IDLE or not state.durations:
            return state, []
        return _begin(state)

    if isinstance(event, NarrationFinished):
        if phase != SessionPhase.SPEAKING or event.generation != state.generation:
            return state, []
        return replace(state, phase=SessionPhase.WAITING_FOR_START, listener_active=True), [StartListener()]

    if isinstance(event, StartCommand):
        if phase != SessionPhase.WAITING_FOR_START:
            return state, []
        effects: List[Effect] = [StopListener()]
        if state.current_duration > 0:
            new_state = replace(
                state,
                phase=SessionPhase.TIMER_RUNNING,
                remaining_seconds=state.current_duration,
                listener_active=False,
            )
            return new_state, effects + [StartTimer(state.current_duration, state.generation)]
        new_state, advance_effects = _advance(replace(state, listener_active=False))
        return new_state, effects + advance_effects

    if isinstance(event, TimerTicked):
        if phase != SessionPhase.TIMER_RUNNING or event.generation != state.generation:
            return state, []
        return replace(state, remaining_seconds=event.remaining), []

    if isinstance(event, TimerFinished):
        if phase != SessionPhase.TIMER_RUNNING or event.generation != state.generation:
            return state, []
        return _advance(replace(state, remaining_seconds=0))

    if isinstance(event, SkipStep):
        if phase not in ACTIVE_PHASES:
            return state, []
        new_state, effects = _advance(state)
        return new_state, _release(state) + effects

    if isinstance(event, RestartTimer):
        if phase == SessionPhase.WAITING_FOR_START:
            new_state = replace(state, remaining_seconds=state.current_duration, listener_active=True)
            return new_state, [StopListener(), StartListener()]
        if phase == SessionPhase.TIMER_RUNNING:
            new_state = replace(state, remaining_seconds=state.current_duration)
            return new_state, [CancelTimer(), StartTimer(state.current_duration, state.generation)]
        return state, []

    if isinstance(event, RestartRecipe):
        if phase == SessionPhase.IDLE or not state.durations:
            return state, []
        new_state, effects = _begin(state)
        return new_state, _release_all() + effects

    if isinstance(event, StopCooking):
        if phase == SessionPhase.IDLE:
            return state, []
        new_state = initial_state(state.durations)
        return replace(new_state, generation=state.generation + 1), _release_all()

    if isinstance(event, RatingSubmitted):
        if phase != SessionPhase.COMPLETE or not state.rating_prompt_pending:
            return state, []
        return replace(state, rating_prompt_pending=False), [RecordRating(event.rating)]

    if isinstance(event, RatingDeclined):
        if phase != SessionPhase.COMPLETE or not state.rating_prompt_pending:
            return state, []
        return replace(state, rating_prompt_pending=False), []

    raise TypeError(f"Unknown session event: {event!r}")


