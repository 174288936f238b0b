from pulse.core.completion import CompletionHeuristic, MSG_DISCOVERING, MSG_STARTING
from pulse.core.progress_session import build_update, compute_progress
from pulse.data.schemas import RescanPhase, RescanSample, Verdict

CHAIN = 1000

def _inactive():
    return RescanSample(False, 0)

def _active(height):
    return RescanSample(True, height)

def _feed(heuristic, samples):
    out = []
    for s in samples:
        out.extend(heuristic.observe(s, CHAIN))
    return out

def test_grace_period_does_not_count_inactivity():
    h = CompletionHeuristic(grace_period_ticks=5, close_threshold=5)
    verdicts = _feed(h, [_inactive()] * 5)
    assert [v.phase for v in verdicts] == [RescanPhase.STARTING] * 5
    assert all(v.message == MSG_STARTING for v in verdicts)
    assert h.consecutive_inactive == 0
    assert not h.finished

def test_pending_grace_message():
    h = CompletionHeuristic.for_pending(20)
    assert h.grace_period_ticks == 20
    assert h.close_threshold == 30
    v = h.observe(_inactive(), CHAIN)[0]
    assert v.phase == RescanPhase.STARTING
    assert v.message == MSG_DISCOVERING

def test_exactly_one_terminal_sample():
    h = CompletionHeuristic(grace_period_ticks=2, close_threshold=3)
    verdicts = _feed(h, [_inactive()] * 12)
    phases = [v.phase for v in verdicts]

    assert phases == [RescanPhase.STARTING] * 2 + [RescanPhase.CHECKING] * 3 + [RescanPhase.COMPLETE]
    final = verdicts[-1]
    assert final.sample.is_active is False
    assert final.sample.scanned_height == CHAIN
    assert h.finished
    assert h.observe(_active(10), CHAIN) == []

def test_active_sample_resets_inactive_count():
    h = CompletionHeuristic(grace_period_ticks=0, close_threshold=5)
    _feed(h, [_inactive()] * 4)
    assert h.consecutive_inactive == 4

    v = h.observe(_active(700), CHAIN)
    assert v[0].phase == RescanPhase.RESCANNING
    assert v[0].message == "Rescanning... 700/1000 blocks"
    assert h.consecutive_inactive == 0

    verdicts = _feed(h, [_inactive()] * 4)
    assert RescanPhase.COMPLETE not in [x.phase for x in verdicts]
    assert h.observe(_inactive(), CHAIN)[-1].phase == RescanPhase.COMPLETE

def test_active_samples_never_finish():
    h = CompletionHeuristic(grace_period_ticks=0, close_threshold=1)
    verdicts = _feed(h, [_active(i) for i in range(50)])
    assert all(v.phase == RescanPhase.RESCANNING for v in verdicts)
    assert not h.finished

def test_progress_percentage():
    assert compute_progress(500, 1000) == 50.0
    assert compute_progress(1500, 1000) == 100.0
    assert compute_progress(0, 1000) == 0.0
    assert compute_progress(10, 0) == 0.0

def test_build_update_clamps_and_reports():
    update = build_update(Verdict(RescanPhase.RESCANNING, _active(500), "x"), CHAIN)
    assert update.progress == 50.0
    assert update.is_rescanning is True
    assert update.chain_height == CHAIN

    # Chain height cache can lag the scan
    update = build_update(Verdict(RescanPhase.RESCANNING, _active(1005), "x"), CHAIN)
    assert update.progress == 100.0

    update = build_update(Verdict(RescanPhase.SYNCED, RescanSample(False, CHAIN), "synced"), CHAIN)
    assert update.progress == 100.0
    assert update.is_rescanning is False

if __name__ == "__main__":
    test_grace_period_does_not_count_inactivity()
    test_pending_grace_message()
    test_exactly_one_terminal_sample()
    test_active_sample_resets_inactive_count()
    test_active_samples_never_finish()
    test_progress_percentage()
    test_build_update_clamps_and_reports()
    print("Completion Heuristic Tests Passed!")
