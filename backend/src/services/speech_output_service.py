"""Narration output for cooking sessions.

Two backends sit behind ``SpeechOutputAdapter``: the ElevenLabs voice service
(better voices for Indian languages) and the platform synthesizer (``say`` on
macOS, ``espeak-ng`` elsewhere). The adapter prefers the cloud backend when it
is configured and falls back to the local one for an utterance that fails.
"""
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

import requests

from services.errors import SpeechError
from services.scheduler import Scheduler

logger = logging.getLogger(__name__)

ELEVEN_LABS_URL = "https://api.elevenlabs.io/v1"

Callback = Optional[Callable[[], None]]
ErrorCallback = Optional[Callable[[Exception], None]]


@dataclass(frozen=True)
class SpeechOptions:
    rate: float = 0.9
    pitch: float = 1.0
    volume: float = 1.0


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str


class SpeechBackend(Protocol):
    name: str

    def available(self) -> bool:
        ...

    def speak(self, text: str, language: str, options: SpeechOptions,
              on_start: Callable[[], None], on_end: Callable[[], None],
              on_error: Callable[[Exception], None]) -> None:
        ...

    def cancel(self) -> None:
        ...

    def is_speaking(self) -> bool:
        ...

    def is_pending(self) -> bool:
        ...


def _normalize_tag(tag: str) -> str:
    return tag.replace("_", "-").lower()


def select_voice(voices: List[Voice], language: str) -> Optional[Voice]:
    """Pick the best voice: exact tag, then language prefix, then the first one."""
    if not voices:
        return None
    wanted = _normalize_tag(language)
    for voice in voices:
        if _normalize_tag(voice.lang) == wanted:
            return voice
    prefix = wanted.split("-")[0]
    for voice in voices:
        if _normalize_tag(voice.lang).startswith(prefix):
            logger.info(f"Found voice by language prefix: {voice.name} ({voice.lang})")
            return voice
    logger.warning(f"No voice found for {language}, using default: {voices[0].name} ({voices[0].lang})")
    return voices[0]


def parse_say_voices(output: str) -> List[Voice]:
    """Parse ``say -v ?`` output, e.g. ``Alex   en_US   # Most people recognize me``."""
    voices = []
    for line in output.splitlines():
        head = line.split("#", 1)[0].strip()
        if not head:
            continue
        parts = head.rsplit(None, 1)
        if len(parts) != 2:
            continue
        voices.append(Voice(name=parts[0].strip(), lang=parts[1]))
    return voices


def parse_espeak_voices(output: str) -> List[Voice]:
    """Parse ``espeak-ng --voices`` output (header line plus one row per voice)."""
    voices = []
    for line in output.splitlines()[1:]:
        columns = line.split()
        if len(columns) < 4:
            continue
        voices.append(Voice(name=columns[1], lang=columns[1]))
    return voices


class _Job:
    """One utterance inside a backend; cancellation is visible across threads."""

    def __init__(self):
        self.cancelled = threading.Event()
        self.started = threading.Event()
        self.process: Optional[subprocess.Popen] = None
        self.lock = threading.Lock()

    def terminate(self) -> None:
        self.cancelled.set()
        with self.lock:
            process = self.process
        if process is not None and process.poll() is None:
            process.terminate()


class SystemVoiceBackend:
    """Platform text-to-speech through the ``say`` or ``espeak-ng`` command."""

    name = "system"

    def __init__(self, scheduler: Scheduler, command: Optional[str] = None):
        self.scheduler = scheduler
        self.command = command or self._detect_command()
        self._voices: List[Voice] = []
        self._job: Optional[_Job] = None

    @staticmethod
    def _detect_command() -> Optional[str]:
        for candidate in ("say", "espeak-ng", "espeak"):
            if shutil.which(candidate):
                return candidate
        return None

    def available(self) -> bool:
        return self.command is not None

    def list_voices(self) -> List[Voice]:
        """Enumerate installed voices, cached after the first non-empty result."""
        if self._voices or not self.command:
            return self._voices
        args = [self.command, "-v", "?"] if self.command == "say" else [self.command, "--voices"]
        try:
            output = subprocess.run(args, capture_output=True, text=True, timeout=5).stdout
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Could not list voices with {self.command}: {e}")
            return []
        parse = parse_say_voices if self.command == "say" else parse_espeak_voices
        self._voices = parse(output)
        logger.info(f"Loaded {len(self._voices)} voices from {self.command}")
        return self._voices

    def build_command(self, text: str, language: str, options: SpeechOptions) -> List[str]:
        voices = self.list_voices()
        if not voices:
            logger.warning("No voices available yet. Speech might not use the right language.")
        voice = select_voice(voices, language)

        if self.command == "say":
            args = ["say", "-r", str(int(175 * options.rate))]
            if voice:
                args += ["-v", voice.name]
            return args + [text]

        args = [
            self.command,
            "-s", str(int(175 * options.rate)),
            "-p", str(int(min(max(50 * options.pitch, 0), 99))),
            "-a", str(int(min(max(100 * options.volume, 0), 200))),
        ]
        if voice:
            args += ["-v", voice.name]
        return args + [text]

    def speak(self, text, language, options, on_start, on_end, on_error) -> None:
        if not self.available():
            raise SpeechError("No platform speech synthesizer found")
        self.cancel()
        job = _Job()
        self._job = job
        threading.Thread(
            target=self._run, args=(job, text, language, options, on_start, on_end, on_error), daemon=True
        ).start()

    def _run(self, job: _Job, text, language, options, on_start, on_end, on_error) -> None:
        # Voice enumeration and process start both block; they run here, never on the scheduler.
        args = self.build_command(text, language, options)
        with job.lock:
            if job.cancelled.is_set():
                return
            try:
                job.process = subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            except OSError as e:
                error = SpeechError(f"Failed to start {self.command}: {e}")
                self.scheduler.call_soon_threadsafe(lambda: on_error(error))
                return
        job.started.set()
        logger.info(f"System speech started with {self.command} (lang: {language})")
        self.scheduler.call_soon_threadsafe(on_start)
        code = job.process.wait()
        if job.cancelled.is_set():
            return
        if code == 0:
            self.scheduler.call_soon_threadsafe(on_end)
        else:
            error = SpeechError(f"{self.command} exited with status {code}")
            self.scheduler.call_soon_threadsafe(lambda: on_error(error))

    def cancel(self) -> None:
        if self._job is not None:
            self._job.terminate()
            self._job = None

    def is_speaking(self) -> bool:
        job = self._job
        return bool(job and job.process is not None and job.process.poll() is None)

    def is_pending(self) -> bool:
        job = self._job
        return bool(job and not job.started.is_set() and not job.cancelled.is_set())


class ElevenLabsBackend:
    """Cloud narration: synthesize MP3 with ElevenLabs, play it with a local player."""

    name = "elevenlabs"

    def __init__(
        self,
        scheduler: Scheduler,
        api_key: Optional[str],
        voice_id: str = "EXAVITQu4vr4xnSDxMaL",
        model_id: str = "eleven_flash_v2_5",
        player_command: Optional[str] = None,
    ):
        self.scheduler = scheduler
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.player = shlex.split(player_command) if player_command else self._detect_player()
        self._job: Optional[_Job] = None

    @staticmethod
    def _detect_player() -> Optional[List[str]]:
        if shutil.which("ffplay"):
            return ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]
        if shutil.which("afplay"):
            return ["afplay"]
        if shutil.which("mpg123"):
            return ["mpg123", "-q"]
        return None

    def available(self) -> bool:
        if not self.api_key:
            logger.debug("ELEVEN_LABS_API_KEY not set, cloud voice disabled")
            return False
        return self.player is not None

    def synthesize(self, text: str, language: str, options: SpeechOptions) -> bytes:
        """Generate audio from text using the ElevenLabs API."""
        url = f"{ELEVEN_LABS_URL}/text-to-speech/{self.voice_id}"
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        payload = {
            "text": text,
            "model_id": self.model_id,
            "language_code": language.split("-")[0],
            "voice_settings": {
                "stability": 0.75,
                "similarity_boost": 0.75,
                "speed": min(max(options.rate, 0.7), 1.2),
            },
        }
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Error generating audio: {e}")
            raise SpeechError(f"ElevenLabs synthesis failed: {e}") from e
        return response.content

    def speak(self, text, language, options, on_start, on_end, on_error) -> None:
        if not self.available():
            raise SpeechError("ElevenLabs backend is not configured")
        self.cancel()
        job = _Job()
        self._job = job
        threading.Thread(
            target=self._run, args=(job, text, language, options, on_start, on_end, on_error), daemon=True
        ).start()

    def _run(self, job: _Job, text, language, options, on_start, on_end, on_error) -> None:
        path = None
        try:
            audio = self.synthesize(text, language, options)
            if job.cancelled.is_set():
                return
            with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as handle:
                handle.write(audio)
                path = handle.name
            with job.lock:
                if job.cancelled.is_set():
                    return
                job.process = subprocess.Popen(
                    self.player + [path], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
                )
            job.started.set()
            self.scheduler.call_soon_threadsafe(on_start)
            code = job.process.wait()
            if job.cancelled.is_set():
                return
            if code != 0:
                raise SpeechError(f"Audio player exited with status {code}")
            self.scheduler.call_soon_threadsafe(on_end)
        except (SpeechError, OSError) as e:
            if not job.cancelled.is_set():
                self.scheduler.call_soon_threadsafe(lambda: on_error(e))
        finally:
            if path:
                try:
                    os.unlink(path)
                except OSError:
                    logger.debug(f"Could not remove temporary audio file {path}")

    def cancel(self) -> None:
        if self._job is not None:
            self._job.terminate()
            self._job = None

    def is_speaking(self) -> bool:
        job = self._job
        return bool(job and job.process is not None and job.process.poll() is None)

    def is_pending(self) -> bool:
        job = self._job
        return bool(job and not job.started.is_set() and not job.cancelled.is_set())


class Utterance:
    """Handle for one ``speak`` call; terminal callbacks fire at most once."""

    def __init__(self, text: str, language: str, options: SpeechOptions,
                 on_start: Callback, on_end: Callback, on_error: ErrorCallback):
        self.text = text
        self.language = language
        self.options = options
        self._on_start = on_start
        self._on_end = on_end
        self._on_error = on_error
        self.started = False
        self.finished = False

    def fire_start(self) -> None:
        if self.finished or self.started:
            return
        self.started = True
        if self._on_start:
            self._on_start()

    def fire_end(self) -> None:
        if self.finished:
            return
        self.finished = True
        if self._on_end:
            self._on_end()

    def fire_error(self, error: Exception) -> None:
        if self.finished:
            return
        self.finished = True
        if self._on_error:
            self._on_error(error)

    def silence(self) -> None:
        self.finished = True


class SpeechOutputAdapter:
    """Single ``speak``/``cancel`` contract over a cloud and a local backend."""

    def __init__(self, scheduler: Scheduler, primary: Optional[SpeechBackend], fallback: Optional[SpeechBackend]):
        self.scheduler = scheduler
        self.primary = primary
        self.fallback = fallback
        self._current: Optional[Utterance] = None

    def _backends(self) -> List[SpeechBackend]:
        return [b for b in (self.primary, self.fallback) if b is not None]

    def is_speaking(self) -> bool:
        return any(b.is_speaking() for b in self._backends())

    def speak(
        self,
        text: str,
        language: str,
        options: Optional[SpeechOptions] = None,
        on_start: Callback = None,
        on_end: Callback = None,
        on_error: ErrorCallback = None,
    ) -> Utterance:
        """Speak ``text``, replacing anything still playing or queued.

        Callbacks never run inside this call; they arrive through the scheduler.
        """
        self.cancel()
        utterance = Utterance(text, language, options or SpeechOptions(), on_start, on_end, on_error)
        self._current = utterance
        logger.info(f"Attempting to speak in {language}: {text[:50]}...")

        candidates = [b for b in self._backends() if b.available()]
        if not candidates:
            logger.error("No speech backend available")
            error = SpeechError("Speech synthesis not supported")
            self.scheduler.call_later(0, lambda: self._finish_error(utterance, error))
            return utterance

        self._try_backend(utterance, candidates, 0)
        return utterance

    def _try_backend(self, utterance: Utterance, candidates: List[SpeechBackend], index: int) -> None:
        backend = candidates[index]

        def on_start():
            if utterance is self._current:
                utterance.fire_start()

        def on_end():
            if utterance is self._current:
                logger.info(f"Speech completed ({backend.name})")
                utterance.fire_end()

        def on_error(error: Exception):
            if utterance is not self._current or utterance.finished:
                return
            logger.error(f"{backend.name} speech error: {error}")
            if index + 1 < len(candidates):
                logger.info(f"Falling back to {candidates[index + 1].name} speech synthesis...")
                self._try_backend(utterance, candidates, index + 1)
            else:
                utterance.fire_error(error)

        try:
            backend.speak(utterance.text, utterance.language, utterance.options, on_start, on_end, on_error)
        except SpeechError as e:
            self.scheduler.call_later(0, lambda: on_error(e))

    def _finish_error(self, utterance: Utterance, error: Exception) -> None:
        if utterance is self._current:
            utterance.fire_error(error)

    def cancel(self) -> None:
        """Stop any utterance that is playing or queued; safe to call repeatedly."""
        if self._current is not None:
            self._current.silence()
            self._current = None
        for backend in self._backends():
            if backend.is_speaking() or backend.is_pending():
                logger.info(f"Canceling existing {backend.name} speech...")
                backend.cancel()


def create_speech_output(scheduler: Scheduler, settings) -> SpeechOutputAdapter:
    """Build the adapter from application settings."""
    cloud = ElevenLabsBackend(
        scheduler,
        api_key=settings.eleven_labs_api_key,
        voice_id=settings.eleven_labs_voice_id,
        model_id=settings.eleven_labs_model_id,
        player_command=settings.audio_player,
    )
    return SpeechOutputAdapter(scheduler, primary=cloud, fallback=SystemVoiceBackend(scheduler))
