from .time import format_relative_time

__all__ = ["format_relative_time"]
