"""Hands-free "start" command detection.

The listener wraps a recognition engine with the rules a kitchen needs:
permission is asked once, silence and aborted captures are ignored, dropped
sessions are restarted a bounded number of times, and anything fatal leaves
the user with the manual Start Timer button.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import speech_recognition as sr

from models.schemas import ListenerState
from services import languages
from services.errors import RecognitionError
from services.scheduler import Cancellable, Scheduler

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = {"no-speech", "aborted"}
FATAL_ERRORS = {"not-allowed", "permission-denied", "network", "service-not-allowed", "audio-capture"}
PERMISSION_ERRORS = {"not-allowed", "permission-denied"}

PERMISSION_DENIED_NOTICE = "Microphone permission denied. Please allow microphone access or use the Start Timer button."
MANUAL_ONLY_NOTICE = "Voice commands stopped responding. Use the Start Timer button to continue."


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded, rate-limited restarts for the recognition engine."""

    max_attempts: int = 5
    min_interval: float = 1.0

    def can_retry(self, attempts: int) -> bool:
        return attempts < self.max_attempts

    def delay_before_retry(self, last_attempt_at: Optional[float], now: float) -> float:
        if last_attempt_at is None:
            return 0.0
        return max(self.min_interval - (now - last_attempt_at), 0.0)


class RecognitionHandle(Protocol):
    def stop(self) -> None:
        ...


class RecognitionEngine(Protocol):
    def request_permission(self, on_result: Callable[[bool], None]) -> None:
        """Ask for microphone access; the answer arrives through ``on_result``."""
        ...

    def start(
        self,
        language: str,
        on_result: Callable[[str], None],
        on_error: Callable[[str], None],
        on_end: Callable[[], None],
    ) -> RecognitionHandle:
        ...


class _BackgroundHandle:
    def __init__(self, stop_listening: Callable[..., None]):
        self._stop_listening = stop_listening
        self._stopped = False

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._stop_listening(wait_for_stop=False)


class SpeechRecognitionEngine:
    """Microphone recognition with the SpeechRecognition package.

    Audio is captured on the library's background thread and transcribed with
    the Google Web Speech API; every callback is posted back to the scheduler.
    """

    def __init__(self, scheduler: Scheduler, phrase_time_limit: float = 4.0):
        self.scheduler = scheduler
        self.phrase_time_limit = phrase_time_limit
        self.recognizer = sr.Recognizer()
        self.recognizer.dynamic_energy_threshold = True

    def request_permission(self, on_result: Callable[[bool], None]) -> None:
        def check() -> None:
            granted = self._open_microphone()
            self.scheduler.call_soon_threadsafe(lambda: on_result(granted))

        threading.Thread(target=check, daemon=True).start()

    def _open_microphone(self) -> bool:
        try:
            with sr.Microphone() as source:
                self.recognizer.adjust_for_ambient_noise(source, duration=0.5)
        except (OSError, AttributeError) as e:
            logger.error(f"Microphone permission denied or unavailable: {e}")
            return False
        logger.info("Microphone permission granted")
        return True

    def start(self, language, on_result, on_error, on_end) -> RecognitionHandle:
        try:
            microphone = sr.Microphone()
        except (OSError, AttributeError) as e:
            raise RecognitionError("not-allowed", f"Could not open microphone: {e}") from e

        def callback(recognizer: sr.Recognizer, audio: sr.AudioData) -> None:
            try:
                transcript = recognizer.recognize_google(audio, language=language)
            except sr.UnknownValueError:
                self.scheduler.call_soon_threadsafe(lambda: on_error("no-speech"))
                return
            except sr.RequestError as e:
                logger.error(f"Recognition service error: {e}")
                self.scheduler.call_soon_threadsafe(lambda: on_error("network"))
                return
            self.scheduler.call_soon_threadsafe(lambda: on_result(transcript))

        stop_listening = self.recognizer.listen_in_background(
            microphone, callback, phrase_time_limit=self.phrase_time_limit
        )
        logger.info(f"Speech recognition started ({language})")
        return _BackgroundHandle(stop_listening)


class VoiceCommandListener:
    """Listens for the language's start command and reports it once."""

    def __init__(
        self,
        engine: RecognitionEngine,
        scheduler: Scheduler,
        policy: Optional[RetryPolicy] = None,
        on_status: Optional[Callable[[ListenerState, Optional[str]], None]] = None,
    ):
        self.engine = engine
        self.scheduler = scheduler
        self.policy = policy or RetryPolicy()
        self.on_status = on_status
        self.state = ListenerState.IDLE
        self.error: Optional[str] = None
        self.attempts = 0
        self._permission: Optional[bool] = None
        self._permission_pending = False
        self._handle: Optional[RecognitionHandle] = None
        self._restart: Optional[Cancellable] = None
        self._token = 0
        self._language = ""
        self._command = ""
        self._on_detected: Optional[Callable[[], None]] = None
        self._last_attempt_at: Optional[float] = None

    @property
    def active(self) -> bool:
        """True only while a recognition handle is open."""
        return self.state == ListenerState.LISTENING and self._handle is not None

    def _set_state(self, state: ListenerState, error: Optional[str] = None) -> None:
        self.state = state
        self.error = error
        if self.on_status:
            self.on_status(state, error)

    def listen_for_start(self, language: str, on_detected: Callable[[], None]) -> bool:
        """Start listening; ``on_detected`` fires once when the command is heard.

        Returns False when listening could not begin, leaving the manual path.
        The first call asks for microphone access and the engine starts once
        the answer comes back.
        """
        self.stop()

        if self._permission is False:
            self._deny()
            return False

        self._token += 1
        self._language = language
        self._command = languages.get_start_command(language).lower()
        self._on_detected = on_detected
        self.attempts = 0
        self._last_attempt_at = None
        self._set_state(ListenerState.LISTENING)

        if self._permission is None:
            if not self._permission_pending:
                self._permission_pending = True
                logger.info("Requesting microphone permission")
                self.engine.request_permission(self._handle_permission)
        else:
            self._begin()
        return self.state == ListenerState.LISTENING

    def _handle_permission(self, granted: bool) -> None:
        self._permission_pending = False
        self._permission = granted
        if self.state != ListenerState.LISTENING or self._on_detected is None:
            return
        if not granted:
            self._teardown()
            self._deny()
            return
        self._begin()

    def _deny(self) -> None:
        logger.warning("Microphone permission not granted, voice commands disabled")
        self._set_state(ListenerState.FAILED, PERMISSION_DENIED_NOTICE)

    def _begin(self) -> None:
        logger.info(f"Listening for '{self._command}' in {self._language}")
        self._start_engine(self._token)

    def _start_engine(self, token: int) -> None:
        self._last_attempt_at = self.scheduler.time()
        try:
            handle = self.engine.start(
                self._language,
                on_result=lambda transcript: self._handle_result(token, transcript),
                on_error=lambda code: self._handle_error(token, code),
                on_end=lambda: self._handle_end(token),
            )
        except RecognitionError as e:
            logger.error(f"Failed to start recognition: {e}")
            self._handle_error(token, e.code)
            return
        self._handle = handle
        if self.state != ListenerState.LISTENING:
            self._set_state(ListenerState.LISTENING)

    def _handle_result(self, token: int, transcript: str) -> None:
        if token != self._token:
            return
        self.attempts = 0
        logger.info(f"Heard: {transcript}")
        if self._command and self._command in transcript.lower():
            logger.info("Start command detected")
            callback = self._on_detected
            self.stop()
            if callback:
                callback()

    def _handle_error(self, token: int, code: str) -> None:
        if token != self._token:
            return
        if code in TRANSIENT_ERRORS:
            logger.debug(f"Ignoring transient recognition error: {code}")
            return
        if code in FATAL_ERRORS:
            logger.error(f"Fatal recognition error: {code}")
            self._teardown()
            if code in PERMISSION_ERRORS:
                self._permission = False
                self._set_state(ListenerState.FAILED, PERMISSION_DENIED_NOTICE)
            else:
                self._set_state(ListenerState.FAILED, f"Recognition unavailable: {code}")
            return
        logger.warning(f"Recognition error: {code}")
        self._schedule_restart(token)

    def _handle_end(self, token: int) -> None:
        if token != self._token:
            return
        logger.info("Recognition ended")
        self._handle = None
        self._schedule_restart(token)

    def _schedule_restart(self, token: int) -> None:
        self._stop_handle()
        if self._restart is not None:
            return
        if not self.policy.can_retry(self.attempts):
            logger.warning(f"Recognition gave up after {self.attempts} restarts")
            self._token += 1
            self._set_state(ListenerState.MANUAL_ONLY, MANUAL_ONLY_NOTICE)
            return
        self.attempts += 1
        delay = self.policy.delay_before_retry(self._last_attempt_at, self.scheduler.time())
        logger.info(f"Restarting recognition in {delay:.1f}s (attempt {self.attempts}/{self.policy.max_attempts})")
        self._restart = self.scheduler.call_later(delay, lambda: self._run_restart(token))

    def _run_restart(self, token: int) -> None:
        self._restart = None
        if token != self._token:
            return
        self._start_engine(token)

    def _stop_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.stop()

    def _teardown(self) -> None:
        self._token += 1
        self._on_detected = None
        if self._restart is not None:
            self._restart.cancel()
            self._restart = None
        self._stop_handle()

    def stop(self) -> None:
        """Stop listening and drop any pending restart; safe to call repeatedly."""
        self._teardown()
        if self.state == ListenerState.LISTENING:
            self._set_state(ListenerState.IDLE, self.error)
