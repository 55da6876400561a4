import logging

from peercall.debug_log import DebugLogHandler


def _logger(handler):
    logger = logging.getLogger("peercall.test.debug")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.handlers = [handler]
    return logger


def test_keeps_only_most_recent_entries():
    handler = DebugLogHandler()
    logger = _logger(handler)

    for index in range(30):
        logger.info(f"event {index}")

    entries = handler.entries()
    assert len(entries) == 21
    assert entries[0].message == "event 9"
    assert entries[-1].message == "event 29"


def test_skips_records_below_handler_level():
    handler = DebugLogHandler(capacity=5)
    logger = _logger(handler)

    logger.debug("hidden")
    logger.warning("visible")

    assert [(e.level, e.message) for e in handler.entries()] == [("WARNING", "visible")]


def test_listener_receives_each_entry_and_clear_empties_buffer():
    seen = []
    handler = DebugLogHandler(capacity=2, listener=seen.append)
    logger = _logger(handler)

    logger.info("a")
    logger.error("b")
    logger.info("c")

    assert [e.message for e in seen] == ["a", "b", "c"]
    assert [e.message for e in handler.entries()] == ["b", "c"]

    handler.clear()
    assert handler.entries() == []
