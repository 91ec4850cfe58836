import pytest

from models.schemas import ListenerState, Recipe, SessionPhase, Step, TasteRating
from services.cooking_session_service import CookingSessionController, CookSessionService, build_step_narration
from services.errors import EmptyRecipeError, SessionNotFoundError, SessionStateError
from services.speech_output_service import SpeechOutputAdapter
from services.voice_command_service import PERMISSION_DENIED_NOTICE

COMPLETION = "Congratulations! You have completed the recipe."


@pytest.fixture
def ratings():
    return []


@pytest.fixture
def make_controller(scheduler, speech_backend, recognition, ratings):
    def factory(recipe, **kwargs):
        kwargs.setdefault("language", "en-IN")
        return CookingSessionController(
            recipe,
            speech=SpeechOutputAdapter(scheduler, primary=None, fallback=speech_backend),
            recognition=recognition,
            scheduler=scheduler,
            rating_sink=ratings.append,
            **kwargs,
        )
    return factory


def test_step_narration_text(boil_recipe):
    assert build_step_narration(boil_recipe, 0, "en-IN") == (
        "Step 1 of 2. Boil water This step takes approximately 2 seconds. Say 'start' when you're ready."
    )
    assert build_step_narration(boil_recipe, 1, "en-IN") == (
        "Step 2 of 2. Add salt Say 'start' when you're ready."
    )


def test_boil_water_add_salt_walkthrough(make_controller, boil_recipe, scheduler, speech_backend, recognition, ratings):
    """Test the full hands-free flow through a timed and an untimed step."""
    controller = make_controller(boil_recipe)
    controller.start()

    # first narration starts in the same call
    assert controller.phase == SessionPhase.SPEAKING
    assert speech_backend.spoken[0].startswith("Step 1 of 2. Boil water")

    scheduler.run_pending()
    assert controller.phase == SessionPhase.WAITING_FOR_START
    assert controller.snapshot().listener_active

    recognition.hear("start")
    assert controller.phase == SessionPhase.TIMER_RUNNING
    assert not controller.listener.active

    scheduler.advance(1)
    assert controller.snapshot().remaining_seconds == 1

    scheduler.advance(1)
    assert controller.phase == SessionPhase.SPEAKING
    assert controller.state.step_index == 1
    assert len(speech_backend.spoken) == 1

    scheduler.advance(0.3)
    assert speech_backend.spoken[1].startswith("Step 2 of 2. Add salt")
    assert controller.phase == SessionPhase.WAITING_FOR_START

    recognition.hear("start")
    scheduler.run_pending()

    snapshot = controller.snapshot()
    assert snapshot.phase == SessionPhase.COMPLETE
    assert snapshot.rating_prompt_pending
    assert snapshot.current_instruction is None
    assert speech_backend.spoken.count(COMPLETION) == 1

    controller.submit_rating(TasteRating(salty=4))
    assert ratings == [TasteRating(salty=4)]
    assert not controller.snapshot().rating_prompt_pending
    assert controller.phase == SessionPhase.COMPLETE


def test_permission_denied_falls_back_to_manual(make_controller, boil_recipe, scheduler, recognition):
    recognition.permission = False
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()

    snapshot = controller.snapshot()
    assert snapshot.phase == SessionPhase.WAITING_FOR_START
    assert snapshot.listener_state == ListenerState.FAILED
    assert snapshot.notice == PERMISSION_DENIED_NOTICE
    assert recognition.starts == 0

    controller.start_timer()
    assert controller.phase == SessionPhase.TIMER_RUNNING

    controller.dismiss_notice()
    assert controller.snapshot().notice is None


def test_empty_recipe_refuses_to_start(make_controller, speech_backend):
    controller = make_controller(Recipe(title="Nothing"))

    with pytest.raises(EmptyRecipeError, match="Recipe has no steps"):
        controller.start()
    assert controller.phase == SessionPhase.IDLE
    assert speech_backend.spoken == []


def test_skip_during_narration_advances_once(make_controller, boil_recipe, scheduler, speech_backend):
    speech_backend.auto_finish = False
    controller = make_controller(boil_recipe)
    controller.start()
    stale_end = speech_backend._callbacks[1]

    controller.skip()
    stale_end()
    assert controller.state.step_index == 1
    assert speech_backend.cancel_count == 1

    scheduler.advance(0.3)
    assert speech_backend.spoken[-1].startswith("Step 2 of 2")
    assert controller.phase == SessionPhase.SPEAKING


def test_skipping_to_the_end_announces_completion_once(make_controller, boil_recipe, scheduler, speech_backend):
    controller = make_controller(boil_recipe)
    controller.start()
    controller.skip()
    controller.skip()
    controller.skip()
    scheduler.advance(5)

    assert controller.phase == SessionPhase.COMPLETE
    assert speech_backend.spoken.count(COMPLETION) == 1
    assert not any(text.startswith("Step 2") for text in speech_backend.spoken)


def test_stop_releases_everything(make_controller, boil_recipe, scheduler, recognition):
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()
    recognition.hear("start")
    assert controller.timer.running

    controller.stop()
    scheduler.advance(10)

    snapshot = controller.snapshot()
    assert snapshot.phase == SessionPhase.IDLE
    assert snapshot.step_index == 0
    assert not controller.timer.running
    assert not controller.listener.active
    assert not scheduler.pending()


def test_restart_timer_while_waiting_restarts_listener(make_controller, boil_recipe, scheduler, recognition):
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()

    controller.restart_timer()

    assert recognition.starts == 2
    assert controller.phase == SessionPhase.WAITING_FOR_START
    assert controller.listener.active


def test_restart_timer_while_running(make_controller, boil_recipe, scheduler, recognition):
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()
    recognition.hear("start")
    scheduler.advance(1)

    controller.restart_timer()
    assert controller.snapshot().remaining_seconds == 2

    scheduler.advance(1)
    assert controller.phase == SessionPhase.TIMER_RUNNING
    scheduler.advance(1)
    assert controller.phase == SessionPhase.SPEAKING


def test_narration_failure_still_reaches_waiting(make_controller, boil_recipe, scheduler, speech_backend):
    speech_backend.fail = True
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()

    assert controller.phase == SessionPhase.WAITING_FOR_START


def test_restart_recipe_from_complete(make_controller, boil_recipe, scheduler, speech_backend):
    controller = make_controller(boil_recipe)
    controller.start()
    controller.skip()
    controller.skip()
    scheduler.run_pending()
    assert controller.phase == SessionPhase.COMPLETE

    controller.restart()
    assert controller.phase == SessionPhase.SPEAKING
    assert controller.state.step_index == 0
    assert speech_backend.spoken[-1].startswith("Step 1 of 2")


def test_cooks_scaled_recipe(make_controller, paneer_recipe, speech_backend):
    controller = make_controller(paneer_recipe, servings=4)
    controller.start()

    assert "12 minutes" in speech_backend.spoken[0]
    assert controller.snapshot().servings == 4


def test_servings_change_only_when_idle_or_complete(make_controller, paneer_recipe, scheduler):
    controller = make_controller(paneer_recipe)
    controller.start()

    with pytest.raises(SessionStateError):
        controller.set_servings(4)

    controller.stop()
    controller.set_servings(4)
    assert controller.snapshot().servings == 4
    assert controller.state.durations == (720, 0)


def test_unsupported_recognition_language_sets_notice(make_controller, boil_recipe):
    controller = make_controller(boil_recipe, language="ta-IN")
    controller.start()
    assert controller.snapshot().notice


def test_close_is_idempotent(make_controller, boil_recipe, scheduler):
    controller = make_controller(boil_recipe)
    controller.start()
    controller.close()
    controller.close()
    scheduler.advance(5)

    assert controller.phase == SessionPhase.IDLE
    assert not scheduler.pending()


def test_session_registry(scheduler, make_speech_backend, recognition, boil_recipe):
    service = CookSessionService(
        speech_factory=lambda s: SpeechOutputAdapter(s, primary=None, fallback=make_speech_backend()),
        recognition_factory=lambda s: recognition,
        scheduler_factory=lambda: scheduler,
    )
    session = service.start_session(boil_recipe, servings=None, language="en-GB")

    assert service.get_session(session.session_id) is session
    assert session.language == "en-GB"
    assert session.phase == SessionPhase.SPEAKING

    service.end_session(session.session_id)
    assert session.phase == SessionPhase.IDLE
    with pytest.raises(SessionNotFoundError):
        service.get_session(session.session_id)


def test_registry_does_not_keep_empty_sessions(scheduler, make_speech_backend, recognition):
    service = CookSessionService(
        speech_factory=lambda s: SpeechOutputAdapter(s, primary=None, fallback=make_speech_backend()),
        recognition_factory=lambda s: recognition,
        scheduler_factory=lambda: scheduler,
    )
    with pytest.raises(EmptyRecipeError):
        service.start_session(Recipe())
    assert service.list_sessions() == []


def test_snapshot_reports_listener_inactive_between_restarts(make_controller, boil_recipe, scheduler, recognition):
    controller = make_controller(boil_recipe)
    controller.start()
    scheduler.run_pending()
    assert controller.snapshot().listener_active

    recognition.end()
    snapshot = controller.snapshot()
    assert not snapshot.listener_active
    assert snapshot.listener_state == ListenerState.LISTENING

    scheduler.advance(1)
    assert controller.snapshot().listener_active


def test_five_minute_step_counts_down_to_zero(make_controller, scheduler, speech_backend, recognition):
    recipe = Recipe(
        id="dal",
        title="Dal",
        steps=[
            Step(instruction="Simmer the dal", estimate_seconds=300),
            Step(instruction="Add the tadka", estimate_seconds=0),
        ],
    )
    controller = make_controller(recipe)
    ticks = []
    on_tick = controller.timer.on_tick
    controller.timer.on_tick = lambda remaining: (ticks.append(remaining), on_tick(remaining))

    controller.start()
    scheduler.run_pending()
    recognition.hear("start")
    assert controller.snapshot().remaining_seconds == 300

    scheduler.advance(299)
    assert controller.phase == SessionPhase.TIMER_RUNNING
    assert controller.snapshot().remaining_seconds == 1

    scheduler.advance(1)
    assert ticks == list(range(299, -1, -1))
    assert controller.state.step_index == 1
    assert len(speech_backend.spoken) == 1

    scheduler.advance(0.3)
    assert speech_backend.spoken[1].startswith("Step 2 of 2. Add the tadka")


def test_start_only_from_idle(make_controller, paneer_recipe, scheduler, speech_backend):
    controller = make_controller(paneer_recipe)
    controller.start()
    with pytest.raises(SessionStateError):
        controller.start()

    controller.stop()
    controller.set_servings(4)
    controller.start()

    assert controller.phase == SessionPhase.SPEAKING
    assert controller.snapshot().remaining_seconds == 720
    assert "12 minutes" in speech_backend.spoken[-1]


def test_restart_while_idle_keeps_notice(make_controller, boil_recipe):
    controller = make_controller(boil_recipe, language="ta-IN")
    controller.start()
    controller.stop()
    notice = controller.snapshot().notice
    assert notice

    controller.restart()

    assert controller.phase == SessionPhase.IDLE
    assert controller.snapshot().notice == notice


def test_restart_clears_notice(make_controller, boil_recipe):
    controller = make_controller(boil_recipe, language="ta-IN")
    controller.start()

    controller.restart()

    assert controller.phase == SessionPhase.SPEAKING
    assert controller.snapshot().notice is None
