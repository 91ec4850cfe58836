import os
import sys
from pathlib import Path

import pytest

# Get the absolute path to the src directory
src_path = str(Path(__file__).parent.parent.absolute())

# Add the src directory to Python path
sys.path.insert(0, src_path)

# Keep tests independent of a developer's .env
for name in ("MISTRAL_API_KEY", "ELEVEN_LABS_API_KEY"):
    os.environ.pop(name, None)

from models.schemas import Recipe, Step  # noqa: E402
from services.errors import RecognitionError, SpeechError  # noqa: E402


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock: callbacks only run when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self.now + max(delay, 0.0), callback)
        self._handles.append(handle)
        return handle

    def call_soon_threadsafe(self, callback):
        self.call_later(0, callback)

    def time(self):
        return self.now

    def pending(self):
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds=0.0):
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback()
        self.now = target
        self._handles = [h for h in self._handles if not h.cancelled]

    def run_pending(self):
        self.advance(0)


class FakeSpeechBackend:
    """Speech backend that records utterances instead of playing audio."""

    def __init__(self, scheduler, name="fake", available=True, auto_finish=True, fail=False):
        self.scheduler = scheduler
        self.name = name
        self._available = available
        self.auto_finish = auto_finish
        self.fail = fail
        self.spoken = []
        self.cancel_count = 0
        self._callbacks = None

    def available(self):
        return self._available

    def speak(self, text, language, options, on_start, on_end, on_error):
        self.spoken.append(text)
        self._callbacks = (on_start, on_end, on_error)
        if self.fail:
            self.scheduler.call_later(0, lambda: on_error(SpeechError(f"{self.name} failed")))
            self._callbacks = None
        elif self.auto_finish:
            self.scheduler.call_later(0, on_start)
            self.scheduler.call_later(0, self.finish)

    def finish(self):
        if self._callbacks is None:
            return
        _, on_end, _ = self._callbacks
        self._callbacks = None
        on_end()

    def cancel(self):
        self.cancel_count += 1
        self._callbacks = None

    def is_speaking(self):
        return self._callbacks is not None

    def is_pending(self):
        return False


class FakeRecognitionHandle:
    def __init__(self):
        self.stopped = False
        self.stop_calls = 0

    def stop(self):
        self.stop_calls += 1
        self.stopped = True


class FakeRecognitionEngine:
    """Recognition engine driven by the test: ``hear``, ``error`` and ``end``."""

    def __init__(self, permission=True, start_error=None, answer_permission_later=False):
        self.permission = permission
        self.start_error = start_error
        self.answer_permission_later = answer_permission_later
        self.permission_requests = 0
        self.permission_callback = None
        self.starts = 0
        self.handle = None
        self._callbacks = None

    def request_permission(self, on_result):
        self.permission_requests += 1
        if self.answer_permission_later:
            self.permission_callback = on_result
        else:
            on_result(self.permission)

    def answer_permission(self):
        callback, self.permission_callback = self.permission_callback, None
        callback(self.permission)

    def start(self, language, on_result, on_error, on_end):
        self.starts += 1
        self.language = language
        if self.start_error:
            raise RecognitionError(self.start_error)
        self.handle = FakeRecognitionHandle()
        self._callbacks = (on_result, on_error, on_end)
        return self.handle

    @property
    def listening(self):
        return self.handle is not None and not self.handle.stopped

    def hear(self, transcript):
        if self.listening:
            self._callbacks[0](transcript)

    def error(self, code):
        if self.listening:
            self._callbacks[1](code)

    def end(self):
        if self.listening:
            self.handle.stopped = True
            self._callbacks[2]()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def recognition():
    return FakeRecognitionEngine()


@pytest.fixture
def speech_backend(scheduler):
    return FakeSpeechBackend(scheduler)


@pytest.fixture
def boil_recipe():
    return Recipe(
        id="boil",
        title="Salted water",
        ingredients=["1 litre water", "1 tsp salt"],
        steps=[
            Step(instruction="Boil water", estimate_seconds=2),
            Step(instruction="Add salt", estimate_seconds=0),
        ],
    )


@pytest.fixture
def paneer_recipe():
    return Recipe(
        id="paneer",
        title="Paneer Tikka",
        original_servings=2,
        ingredients=["300g paneer", "1 cup yogurt", "2-3 onions", "salt to taste"],
        steps=[
            Step(instruction="Marinate the paneer", estimate_seconds=600),
            Step(instruction="Grill until charred", estimate_seconds=0),
        ],
    )


@pytest.fixture
def make_speech_backend(scheduler):
    def factory(**kwargs):
        return FakeSpeechBackend(scheduler, **kwargs)
    return factory
