import logging
import threading

from boatcare.utils.alerting import WorkflowAlertTracker
from boatcare.utils.request_badges import BadgeState, RequestBadges


def test_alert_fires_at_threshold_and_multiples(monkeypatch, caplog):
    t = {"now": 1000.0}
    monkeypatch.setattr("boatcare.utils.alerting.time.monotonic", lambda: t["now"])
    tracker = WorkflowAlertTracker(window_seconds=60, thresholds={"TRANSITION_CONFLICT": 2})

    with caplog.at_level(logging.WARNING, logger="boatcare.utils.alerting"):
        fired = [tracker.record("TRANSITION_CONFLICT", {"request_id": "r1"}) for _ in range(4)]
    assert fired == [False, True, False, True]
    assert sum("ALERT workflow_event=TRANSITION_CONFLICT" in r.getMessage() for r in caplog.records) == 2


def test_alert_window_expires(monkeypatch):
    t = {"now": 1000.0}
    monkeypatch.setattr("boatcare.utils.alerting.time.monotonic", lambda: t["now"])
    tracker = WorkflowAlertTracker(window_seconds=60, thresholds={"TRANSITION_CONFLICT": 2})

    tracker.record("TRANSITION_CONFLICT")
    t["now"] += 120
    assert tracker.record("TRANSITION_CONFLICT") is False
    assert tracker.count("TRANSITION_CONFLICT") == 1


def test_untracked_events_are_ignored():
    tracker = WorkflowAlertTracker(window_seconds=60, thresholds={})
    assert tracker.record("SOMETHING") is False
    assert tracker.count("SOMETHING") == 0


def test_badges_open_clears_both_markers():
    badges = RequestBadges()
    badges.mark_new("r1")
    badges.mark_status_update("r1")
    badges.mark_status_update("r2")
    assert badges.counts(["r1", "r2", "r3"]) == (1, 2)

    badges.open("r1")
    state = badges.state("r1")
    assert not state.is_new
    assert not state.has_status_update
    assert badges.counts(["r1", "r2"]) == (0, 1)


def test_badges_are_thread_safe():
    badges = RequestBadges()
    ids = [f"r{i}" for i in range(200)]

    def mark(chunk):
        for request_id in chunk:
            badges.mark_new(request_id)

    threads = [threading.Thread(target=mark, args=(ids[i::4],)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert badges.counts(ids) == (200, 0)


def test_badges_evict_oldest_beyond_cap():
    badges = RequestBadges(max_entries=3)
    for request_id in ("r1", "r2", "r3", "r4"):
        badges.mark_new(request_id)
    assert not badges.state("r1").is_new
    assert badges.counts(["r1", "r2", "r3", "r4"]) == (3, 0)


def test_badges_prune_stale_markers(monkeypatch):
    t = {"now": 1000.0}
    monkeypatch.setattr("boatcare.utils.request_badges.time.monotonic", lambda: t["now"])
    badges = RequestBadges(max_age_seconds=3600, prune_interval_seconds=60)

    badges.mark_new("r1")
    badges.mark_status_update("r1")
    t["now"] += 7200
    badges.mark_new("r2")

    assert badges.size() == 1
    assert badges.state("r1") == BadgeState()
    assert badges.state("r2").is_new
