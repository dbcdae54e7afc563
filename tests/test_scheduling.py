from checkin_scanner.services import ManualScheduler


def test_timers_fire_in_due_order():
    scheduler = ManualScheduler()
    fired = []

    scheduler.call_later(300, lambda: fired.append("late"))
    scheduler.call_later(100, lambda: fired.append("early"))
    scheduler.call_soon(lambda: fired.append("soon"))

    scheduler.advance(200)
    assert fired == ["soon", "early"]
    assert scheduler.now_ms == 200

    scheduler.advance(100)
    assert fired == ["soon", "early", "late"]


def test_cancelled_timer_does_not_fire():
    scheduler = ManualScheduler()
    fired = []

    task = scheduler.call_later(100, lambda: fired.append(True))
    task.cancel()
    scheduler.advance(500)

    assert fired == []
    assert not task.active
    assert scheduler.pending_timers() == 0


def test_submit_delivers_results_as_timers():
    scheduler = ManualScheduler()
    results, errors = [], []

    scheduler.submit(lambda: 42, results.append, errors.append)
    assert results == []

    scheduler.advance(0)
    assert results == [42]

    def _boom():
        raise OSError("no device")

    scheduler.submit(_boom, results.append, errors.append)
    scheduler.advance(0)
    assert isinstance(errors[0], OSError)


def test_deferred_work_waits_for_run_work():
    scheduler = ManualScheduler(defer_work=True)
    results = []

    scheduler.submit(lambda: "done", results.append, lambda _error: None)
    scheduler.advance(1000)
    assert results == []
    assert scheduler.pending_work == 1

    scheduler.run_work()
    scheduler.advance(0)
    assert results == ["done"]
