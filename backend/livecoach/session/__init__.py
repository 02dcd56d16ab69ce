from livecoach.session.live_session import LiveSession

__all__ = ["LiveSession"]
