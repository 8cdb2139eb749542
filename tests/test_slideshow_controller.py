import random

import pytest

from slideshow.data_models import Direction, TransitionPhase, TransitionStyle
from slideshow.ui_logic.slideshow_controller import SlideshowController

from tests.conftest import make_item

FADE = 0.3


@pytest.fixture
def controller(scheduler, items):
    ctrl = SlideshowController(scheduler, interval=10, style=TransitionStyle.FADE)
    ctrl.set_playlist(items)
    return ctrl


def go_to(controller, scheduler, index):
    while controller.position != index:
        assert controller.next()
        scheduler.advance(2 * FADE)


def test_initial_position_is_first_item(controller, items):
    assert controller.position == 0
    assert controller.current_item == items[0]
    assert controller.phase is TransitionPhase.IDLE


def test_position_only_changes_when_exit_phase_ends(controller, scheduler):
    assert controller.next()
    assert controller.phase is TransitionPhase.EXITING
    scheduler.advance(FADE - 0.01)
    assert controller.position == 0

    scheduler.advance(0.01)
    assert controller.position == 1
    assert controller.phase is TransitionPhase.ENTERING

    scheduler.advance(FADE)
    assert controller.phase is TransitionPhase.IDLE


def test_next_from_last_index_wraps_to_zero(controller, scheduler, items):
    go_to(controller, scheduler, 2)

    controller.next()
    scheduler.advance(2 * FADE)

    assert controller.position == 0
    assert controller.current_item == items[0]
    assert controller.phase is TransitionPhase.IDLE


def test_previous_from_zero_wraps_to_last(controller, scheduler):
    assert controller.previous()
    assert controller.direction is Direction.PREVIOUS
    scheduler.advance(2 * FADE)
    assert controller.position == 2


def test_navigation_is_ignored_while_transitioning(controller, scheduler):
    assert controller.next()
    assert not controller.next()
    assert not controller.previous()

    scheduler.advance(FADE)
    # Still entering
    assert not controller.next()
    scheduler.advance(FADE)

    assert controller.position == 1
    assert controller.next()


@pytest.mark.parametrize("count", [0, 1])
def test_navigation_needs_two_items(scheduler, count):
    ctrl = SlideshowController(scheduler, interval=10)
    ctrl.set_playlist([make_item(str(n)) for n in range(count)])

    assert not ctrl.next()
    assert not ctrl.previous()
    assert not ctrl.auto_advance_armed
    assert ctrl.position == (0 if count else None)


def test_auto_advance_measures_interval_from_last_transition(controller, scheduler):
    scheduler.advance(10)
    assert controller.phase is TransitionPhase.EXITING
    scheduler.advance(2 * FADE)
    assert controller.position == 1

    # Next advance is due 10 s after the transition finished, at t=20.6
    scheduler.advance(9.9)
    assert controller.phase is TransitionPhase.IDLE
    assert controller.position == 1
    scheduler.advance(0.1)
    assert controller.phase is TransitionPhase.EXITING


def test_manual_navigation_restarts_auto_advance(controller, scheduler):
    scheduler.advance(5)
    controller.next()
    scheduler.advance(2 * FADE)

    scheduler.advance(9.5)  # t=15.1, old schedule would have fired at 10
    assert controller.position == 1
    assert controller.phase is TransitionPhase.IDLE


def test_pause_halts_auto_advance(controller, scheduler):
    controller.pause()
    scheduler.advance(50)

    assert controller.position == 0
    assert not controller.auto_advance_armed

    controller.resume()
    scheduler.advance(10 + 2 * FADE)
    assert controller.position == 1


def test_pause_lets_running_transition_finish(controller, scheduler):
    controller.next()
    controller.pause()
    scheduler.advance(2 * FADE)

    assert controller.position == 1
    assert controller.phase is TransitionPhase.IDLE
    assert not controller.auto_advance_armed


def test_manual_navigation_still_works_when_paused(controller, scheduler):
    controller.pause()
    assert controller.next()
    scheduler.advance(2 * FADE)
    assert controller.position == 1
    assert not controller.auto_advance_armed


def test_shrinking_playlist_clamps_position(controller, scheduler, items):
    go_to(controller, scheduler, 2)

    controller.set_playlist(items[:2])
    assert controller.position == 1
    assert controller.phase is TransitionPhase.IDLE

    controller.set_playlist(items[:1])
    assert controller.position == 0
    assert not controller.auto_advance_armed

    controller.set_playlist([])
    assert controller.position is None
    assert controller.current_item is None


def test_playlist_shrinking_mid_transition_commits_clamped_target(controller, scheduler, items):
    go_to(controller, scheduler, 1)
    controller.next()  # target 2

    controller.set_playlist(items[:2])
    scheduler.advance(2 * FADE)

    assert controller.position == 1
    assert controller.phase is TransitionPhase.IDLE


def test_growing_playlist_arms_auto_advance(scheduler, items):
    ctrl = SlideshowController(scheduler, interval=10)
    ctrl.set_playlist(items[:1])
    assert not ctrl.auto_advance_armed

    ctrl.set_playlist(items)
    assert ctrl.auto_advance_armed
    assert ctrl.position == 0


def test_item_changed_is_emitted_at_commit(controller, scheduler, items):
    events = []
    controller.register_callback(lambda e: events.append(e))

    controller.next()
    assert [e.kind for e in events] == ["phase_changed"]

    scheduler.advance(FADE)
    changed = [e for e in events if e.kind == "item_changed"]
    assert len(changed) == 1
    assert changed[0].item == items[1]
    assert changed[0].position == 1


def test_replacing_playlist_with_same_items_does_not_emit_item_change(controller, items):
    events = []
    controller.register_callback(lambda e: events.append(e))

    controller.set_playlist(list(items))

    assert events == []


def test_style_selects_phase_duration(scheduler, items):
    ctrl = SlideshowController(scheduler, interval=10, style=TransitionStyle.FLIP)
    ctrl.set_playlist(items)

    ctrl.next()
    scheduler.advance(0.3)
    assert ctrl.position == 0
    scheduler.advance(0.1)
    assert ctrl.position == 1


def test_configure_keeps_position_and_restarts_countdown(controller, scheduler):
    go_to(controller, scheduler, 1)
    scheduler.advance(5)

    controller.configure(interval=20, style=TransitionStyle.SLIDE)

    assert controller.position == 1
    assert controller.phase is TransitionPhase.IDLE
    scheduler.advance(19.9)
    assert controller.phase is TransitionPhase.IDLE
    scheduler.advance(0.1)
    assert controller.phase is TransitionPhase.EXITING


def test_zero_interval_disables_auto_advance(controller, scheduler):
    controller.configure(interval=0)
    scheduler.advance(100)
    assert controller.position == 0
    assert not controller.auto_advance_armed


def test_close_cancels_all_timers(controller, scheduler):
    controller.next()
    controller.close()

    assert scheduler.pending_timers == 0
    scheduler.advance(100)
    assert controller.position == 0
    assert not controller.next()


def test_failing_callback_does_not_break_navigation(controller, scheduler):
    def broken(event):
        raise RuntimeError("boom")

    controller.register_callback(broken)
    controller.next()
    scheduler.advance(2 * FADE)

    assert controller.position == 1


def test_random_event_sequences_keep_invariants(scheduler):
    rng = random.Random(1234)
    pool = [make_item(str(n)) for n in range(6)]
    ctrl = SlideshowController(scheduler, interval=3)
    ctrl.set_playlist(pool[:4])

    transitions = []
    ctrl.register_callback(
        lambda e: transitions.append((scheduler.time(), e.phase)) if e.kind == "phase_changed" else None
    )

    for _ in range(500):
        action = rng.choice(["next", "prev", "pause", "resume", "playlist", "tick"])
        if action == "next":
            ctrl.next()
        elif action == "prev":
            ctrl.previous()
        elif action == "pause":
            ctrl.pause()
        elif action == "resume":
            ctrl.resume()
        elif action == "playlist":
            ctrl.set_playlist(pool[: rng.randint(0, len(pool))])
        else:
            scheduler.advance(rng.uniform(0, 4))

        if ctrl.items:
            assert 0 <= ctrl.position < len(ctrl.items)
        else:
            assert ctrl.position is None

    # Phases always cycle EXITING -> ENTERING -> IDLE, so transitions never overlap.
    phases = [phase for _, phase in transitions]
    expected = [TransitionPhase.EXITING, TransitionPhase.ENTERING, TransitionPhase.IDLE]
    for i, phase in enumerate(phases):
        assert phase is expected[i % 3]
