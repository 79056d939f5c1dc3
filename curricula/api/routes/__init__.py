from . import catalog, health, lessons, programs, topics

__all__ = ["catalog", "health", "lessons", "programs", "topics"]
