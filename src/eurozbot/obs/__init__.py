from eurozbot.obs.events import ConsoleEventSink, EventSink, InMemoryEventSink, StatusEvent

__all__ = [
    "ConsoleEventSink",
    "EventSink",
    "InMemoryEventSink",
    "StatusEvent",
]
