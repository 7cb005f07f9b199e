from payroll_batch.jobs.availability import BrokerAvailability


def test_transitions():
    availability = BrokerAvailability()
    assert availability.is_usable() is False
    availability.mark_ready()
    assert availability.is_usable() is True
    availability.mark_error(ConnectionError("refused"))
    assert availability.is_usable() is False
    snap = availability.snapshot()
    assert snap["last_error"] == "refused"
    assert snap["error_count"] == 1
    availability.mark_ready()
    assert availability.is_usable() is True
    assert availability.snapshot()["last_error"] is None


def test_repeated_errors_are_counted():
    availability = BrokerAvailability(initially_usable=True)
    availability.mark_error("a")
    availability.mark_error("b")
    assert availability.snapshot()["error_count"] == 2
    assert availability.snapshot()["last_error"] == "b"
