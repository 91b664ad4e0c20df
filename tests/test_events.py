"""
Tests for the bounded event log.
"""

import logging
import threading

import pytest

from tournament_tui.events import Event, EventLevel, EventLog


class TestEventLevel:
    def test_parse_accepts_enum_and_strings(self):
        assert EventLevel.parse(EventLevel.ERROR) is EventLevel.ERROR
        assert EventLevel.parse("Success") is EventLevel.SUCCESS
        assert EventLevel.parse("warn") is EventLevel.WARNING

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            EventLevel.parse("fatal")


class TestEventLog:
    def test_capacity_evicts_oldest(self):
        log = EventLog(capacity=100)
        for i in range(150):
            log.info(f"event {i}")

        events = log.recent()
        assert len(log) == 100
        assert events[0].message == "event 50"
        assert events[-1].message == "event 149"
        assert log.total_appended == 150

    def test_recent_returns_newest_last(self):
        log = EventLog(capacity=10)
        for i in range(5):
            log.info(str(i))

        assert [e.message for e in log.recent(3)] == ["2", "3", "4"]
        assert log.recent(0) == []
        assert len(log.recent(50)) == 5

    def test_level_helpers(self):
        log = EventLog()
        log.info("a")
        log.success("b")
        log.warning("c")
        log.error("d")

        assert [e.level for e in log.recent()] == [
            EventLevel.INFO,
            EventLevel.SUCCESS,
            EventLevel.WARNING,
            EventLevel.ERROR,
        ]
        assert log.count("error") == 1

    def test_events_are_immutable(self):
        event = EventLog().info("frozen")
        assert isinstance(event, Event)
        with pytest.raises(AttributeError):
            event.message = "changed"

    def test_clear(self):
        log = EventLog()
        log.info("x")
        log.clear()
        assert len(log) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            EventLog(capacity=0)

    def test_hook_errors_do_not_break_append(self):
        def broken_hook(event):
            raise RuntimeError("hook failed")

        log = EventLog(on_append=broken_hook)
        log.info("still recorded")
        assert log.recent()[-1].message == "still recorded"

    def test_events_are_mirrored_to_logger(self, caplog):
        with caplog.at_level(logging.INFO, logger="tournament_tui.events"):
            EventLog().error("disk full")
        assert "disk full" in caplog.text

    def test_format_time(self):
        event = EventLog().info("t")
        assert len(event.format_time()) == 8


class TestConcurrentAccess:
    def test_append_while_reading(self):
        log = EventLog(capacity=50)
        writers = 4
        per_writer = 300
        barrier = threading.Barrier(writers + 1)
        bad_reads = []

        def seq(event):
            writer, n = event.message.split(":")
            return writer, int(n)

        def write(writer):
            barrier.wait()
            for n in range(per_writer):
                log.append("info", f"w{writer}:{n}")

        def in_order(events):
            last = {}
            for event in events:
                writer, n = seq(event)
                if n <= last.get(writer, -1):
                    return False
                last[writer] = n
            return True

        threads = [threading.Thread(target=write, args=(i,)) for i in range(writers)]
        for t in threads:
            t.start()
        barrier.wait()
        while any(t.is_alive() for t in threads):
            events = log.recent()
            if len(events) > log.capacity or not in_order(events):
                bad_reads.append(events)
        for t in threads:
            t.join(5)

        assert bad_reads == []
        final = log.recent()
        assert len(final) == log.capacity
        assert log.total_appended == writers * per_writer
        assert in_order(final)
