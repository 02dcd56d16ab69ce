from livecoach.persistence.recorder import InMemoryRecorder, Recorder, safe_call

__all__ = ["InMemoryRecorder", "Recorder", "safe_call"]
