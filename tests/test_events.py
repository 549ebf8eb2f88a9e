import asyncio
import unittest

from loguru import logger

from turn_orchestrator.events import FanoutEventSink, LoggingEventSink, SafeEventSink, TraceEvent


def _event(**overrides) -> TraceEvent:
    values = {"level": "event", "request_id": "req-1", "at": "t", "name": "agent.request.completed"}
    values.update(overrides)
    return TraceEvent(**values)


class _ListSink:
    def __init__(self):
        self.events = []

    async def emit(self, event) -> None:
        self.events.append(event)


class _RaisingSink:
    async def emit(self, event) -> None:
        raise RuntimeError("sink down")


class EventsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.records = []
        self._handler = logger.add(lambda m: self.records.append(m.record), level="DEBUG")

    def tearDown(self) -> None:
        logger.remove(self._handler)

    def test_to_dict_drops_empty_fields(self) -> None:
        self.assertEqual(
            {"level": "event", "request_id": "req-1", "at": "t", "name": "agent.request.completed"},
            _event().to_dict(),
        )

    def test_logging_sink_levels(self) -> None:
        sink = LoggingEventSink()

        asyncio.run(sink.emit(_event(level="log", code="TOOL_FAILURE", message="boom")))
        asyncio.run(sink.emit(_event(level="event")))
        asyncio.run(sink.emit(_event(level="trace")))

        self.assertEqual(["ERROR", "INFO", "DEBUG"], [r["level"].name for r in self.records])
        self.assertEqual("TOOL_FAILURE", self.records[0]["extra"]["trace_event"]["code"])

    def test_fanout_reaches_every_sink(self) -> None:
        first, second = _ListSink(), _ListSink()

        asyncio.run(FanoutEventSink([first, second]).emit(_event()))

        self.assertEqual(1, len(first.events))
        self.assertEqual(1, len(second.events))

    def test_safe_sink_swallows_and_warns(self) -> None:
        asyncio.run(SafeEventSink(_RaisingSink()).emit(_event()))

        self.assertEqual("WARNING", self.records[-1]["level"].name)
        self.assertIn("sink down", self.records[-1]["message"])


if __name__ == "__main__":
    unittest.main()
