from .audio import play_feedback_async

__all__ = ["play_feedback_async"]
