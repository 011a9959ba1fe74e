"""Schema package exports."""

from .sessions import GenerationSessionRow, ModelRunRow

__all__ = ["GenerationSessionRow", "ModelRunRow"]
