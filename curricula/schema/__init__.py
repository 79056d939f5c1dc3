"""Schema package exports."""

from .content import Lesson, LessonAsset, Program, ProgramAsset, ProgramTopic, Term, Topic

__all__ = ["Lesson", "LessonAsset", "Program", "ProgramAsset", "ProgramTopic", "Term", "Topic"]
