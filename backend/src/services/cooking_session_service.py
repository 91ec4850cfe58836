import logging
import uuid
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from models.schemas import (
    ListenerState,
    Recipe,
    ScaledRecipe,
    SessionPhase,
    SessionSnapshot,
    TasteRating,
)
from services import languages, recipe_scaler
from services.cooking_session_machine import (
    CancelSpeech,
    CancelTimer,
    Effect,
    Event,
    NarrateCompletion,
    NarrateStep,
    NarrationFinished,
    RatingDeclined,
    RatingSubmitted,
    RecordRating,
    RestartRecipe,
    RestartTimer,
    SkipStep,
    StartCommand,
    StartCooking,
    StartListener,
    StartTimer,
    StopCooking,
    StopListener,
    TimerFinished,
    TimerTicked,
    initial_state,
    transition,
)
from services.errors import EmptyRecipeError, SessionNotFoundError, SessionStateError
from services.scheduler import Cancellable, Scheduler
from services.speech_output_service import SpeechOptions, SpeechOutputAdapter
from services.timer_service import CountdownTimer
from services.voice_command_service import RecognitionEngine, RetryPolicy, VoiceCommandListener

logger = logging.getLogger(__name__)

DEFAULT_NEXT_STEP_DELAY = 0.3


def build_step_narration(recipe: Recipe, step_index: int, language: str) -> str:
    """Narration for one step: position, instruction, duration and the command prompt."""
    step = recipe.steps[step_index]
    config = languages.get_language(language)
    parts = [
        f"{languages.get_step_text(language, step_index + 1, len(recipe.steps))}.",
        step.instruction,
        languages.get_time_text(language, step.estimate_seconds),
        config.say_prompt,
    ]
    return " ".join(part for part in parts if part)


class CookingSessionController:
    """Runs one cooking session: narration, voice command, timer, in lockstep.

    State changes go through ``transition``; this class only carries out the
    effects it returns against the speech adapter, listener and timer.
    """

    def __init__(
        self,
        recipe: Recipe,
        speech: SpeechOutputAdapter,
        recognition: RecognitionEngine,
        scheduler: Scheduler,
        language: Optional[str] = None,
        servings: Optional[int] = None,
        rating_sink: Optional[Callable[[TasteRating], None]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        speech_options: Optional[SpeechOptions] = None,
        next_step_delay: float = DEFAULT_NEXT_STEP_DELAY,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.recipe = recipe
        self.language = language or recipe.language
        self.speech = speech
        self.scheduler = scheduler
        self.rating_sink = rating_sink
        self.speech_options = speech_options or SpeechOptions()
        self.next_step_delay = next_step_delay
        self.notice: Optional[str] = None
        self.listener = VoiceCommandListener(
            recognition, scheduler, policy=retry_policy, on_status=self._on_listener_status
        )
        self.timer = CountdownTimer(scheduler, on_tick=self._on_timer_tick, on_complete=self._on_timer_complete)
        self.scaled: ScaledRecipe = recipe_scaler.scale(recipe, servings)
        self.state = initial_state(self._durations())
        self._timer_generation = -1
        self._pending_narration: Optional[Cancellable] = None
        self._queue: List[Event] = []
        self._dispatching = False

    def _durations(self):
        return tuple(step.estimate_seconds for step in self.scaled.steps)

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    def dispatch(self, event: Event) -> None:
        """Apply an event; events raised while effects run are queued behind it."""
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                current = self._queue.pop(0)
                previous = self.state
                self.state, effects = transition(previous, current)
                if self.state.phase != previous.phase:
                    logger.info(
                        f"Session {self.session_id}: {previous.phase.value} -> {self.state.phase.value} "
                        f"(step {self.state.step_index + 1}/{self.state.total_steps})"
                    )
                for effect in effects:
                    self._apply(effect)
        finally:
            self._dispatching = False

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, NarrateStep):
            if effect.delayed and self.next_step_delay > 0:
                self._pending_narration = self.scheduler.call_later(
                    self.next_step_delay, lambda: self._narrate_step(effect.step_index, effect.generation)
                )
            else:
                self._narrate_step(effect.step_index, effect.generation)
        elif isinstance(effect, NarrateCompletion):
            text = languages.get_language(self.language).completion_text
            self._speak(text, effect.generation)
        elif isinstance(effect, CancelSpeech):
            if self._pending_narration is not None:
                self._pending_narration.cancel()
                self._pending_narration = None
            self.speech.cancel()
        elif isinstance(effect, StartListener):
            self.listener.listen_for_start(self.language, self._on_start_detected)
        elif isinstance(effect, StopListener):
            self.listener.stop()
        elif isinstance(effect, StartTimer):
            self._timer_generation = effect.generation
            self.timer.start(effect.seconds)
        elif isinstance(effect, CancelTimer):
            self.timer.cancel()
        elif isinstance(effect, RecordRating):
            if self.rating_sink:
                self.rating_sink(effect.rating)
        else:
            raise TypeError(f"Unknown session effect: {effect!r}")

    def _narrate_step(self, step_index: int, generation: int) -> None:
        self._pending_narration = None
        if generation != self.state.generation:
            return
        self._speak(build_step_narration(self.scaled, step_index, self.language), generation)

    def _speak(self, text: str, generation: int) -> None:
        def on_error(error: Exception) -> None:
            logger.warning(f"Narration failed, continuing without audio: {error}")
            self.dispatch(NarrationFinished(generation))

        self.speech.speak(
            text,
            self.language,
            self.speech_options,
            on_end=lambda: self.dispatch(NarrationFinished(generation)),
            on_error=on_error,
        )

    def _on_start_detected(self) -> None:
        self.dispatch(StartCommand())

    def _on_timer_tick(self, remaining: int) -> None:
        self.dispatch(TimerTicked(remaining, self._timer_generation))

    def _on_timer_complete(self) -> None:
        self.dispatch(TimerFinished(self._timer_generation))

    def _on_listener_status(self, state: ListenerState, error: Optional[str]) -> None:
        if error:
            self.notice = error

    # Public operations

    def start(self) -> None:
        """Begin cooking at step one. Only an idle session can be started."""
        if self.phase != SessionPhase.IDLE:
            logger.error(f"Cannot start session {self.session_id} while {self.phase.value}")
            raise SessionStateError("Cooking is already in progress")
        if not self.scaled.steps:
            logger.error(f"Cannot start cooking recipe {self.recipe.id}: no steps")
            raise EmptyRecipeError()
        logger.info(f"Starting cooking session {self.session_id} for recipe {self.recipe.id}")
        if not languages.is_supported(self.language):
            logger.warning(f"Unsupported language {self.language}, narrating in English")
        self.notice = languages.get_language_support_note(self.language)
        self.dispatch(StartCooking())

    def start_timer(self) -> None:
        """Manual equivalent of saying the start command."""
        self.dispatch(StartCommand())

    def skip(self) -> None:
        self.dispatch(SkipStep())

    def restart_timer(self) -> None:
        self.dispatch(RestartTimer())

    def restart(self) -> None:
        generation = self.state.generation
        self.dispatch(RestartRecipe())
        if self.state.generation != generation:
            self.notice = None

    def stop(self) -> None:
        self.dispatch(StopCooking())

    def dismiss_notice(self) -> None:
        self.notice = None

    def submit_rating(self, rating: TasteRating) -> None:
        self.dispatch(RatingSubmitted(rating))

    def decline_rating(self) -> None:
        self.dispatch(RatingDeclined())

    def set_servings(self, servings: int) -> None:
        if self.phase not in (SessionPhase.IDLE, SessionPhase.COMPLETE):
            raise SessionStateError("Servings can only be changed before cooking starts or after it completes")
        self.scaled = recipe_scaler.scale(self.recipe, servings)
        self.state = replace(self.state, durations=self._durations())
        logger.info(f"Session {self.session_id} now cooking {self.scaled.current_servings} servings")

    def close(self) -> None:
        """Release every resource and return to idle."""
        self.stop()
        if self._pending_narration is not None:
            self._pending_narration.cancel()
            self._pending_narration = None
        self.speech.cancel()
        self.listener.stop()
        self.timer.cancel()

    def snapshot(self) -> SessionSnapshot:
        state = self.state
        instruction = None
        if state.step_index < len(self.scaled.steps) and state.phase != SessionPhase.COMPLETE:
            instruction = self.scaled.steps[state.step_index].instruction
        return SessionSnapshot(
            session_id=self.session_id,
            recipe_id=self.recipe.id,
            phase=state.phase,
            step_index=state.step_index,
            total_steps=state.total_steps,
            current_instruction=instruction,
            remaining_seconds=state.remaining_seconds,
            listener_active=self.listener.active,
            listener_state=self.listener.state,
            notice=self.notice,
            rating_prompt_pending=state.rating_prompt_pending,
            language=self.language,
            servings=self.scaled.current_servings,
        )


class CookSessionService:
    """Registry of live cooking sessions."""

    def __init__(
        self,
        speech_factory: Callable[[Scheduler], SpeechOutputAdapter],
        recognition_factory: Callable[[Scheduler], RecognitionEngine],
        scheduler_factory: Callable[[], Scheduler],
        rating_sink: Optional[Callable[[TasteRating], None]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        speech_options: Optional[SpeechOptions] = None,
        next_step_delay: float = DEFAULT_NEXT_STEP_DELAY,
    ):
        self.speech_factory = speech_factory
        self.recognition_factory = recognition_factory
        self.scheduler_factory = scheduler_factory
        self.rating_sink = rating_sink
        self.retry_policy = retry_policy
        self.speech_options = speech_options
        self.next_step_delay = next_step_delay
        self._sessions: Dict[str, CookingSessionController] = {}

    def start_session(self, recipe: Recipe, servings: Optional[int] = None,
                      language: Optional[str] = None) -> CookingSessionController:
        scheduler = self.scheduler_factory()
        controller = CookingSessionController(
            recipe,
            speech=self.speech_factory(scheduler),
            recognition=self.recognition_factory(scheduler),
            scheduler=scheduler,
            language=language,
            servings=servings,
            rating_sink=self.rating_sink,
            retry_policy=self.retry_policy,
            speech_options=self.speech_options,
            next_step_delay=self.next_step_delay,
        )
        controller.start()
        self._sessions[controller.session_id] = controller
        return controller

    def get_session(self, session_id: str) -> CookingSessionController:
        controller = self._sessions.get(session_id)
        if controller is None:
            logger.error(f"Cooking session not found: {session_id}")
            raise SessionNotFoundError(session_id)
        return controller

    def list_sessions(self) -> List[CookingSessionController]:
        return list(self._sessions.values())

    def end_session(self, session_id: str) -> None:
        controller = self.get_session(session_id)
        controller.close()
        del self._sessions[session_id]
        logger.info(f"Closed cooking session {session_id}")

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.end_session(session_id)
