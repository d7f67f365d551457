"""
Exceptions raised by the swipe prediction pipeline.

Load errors of required artifacts (embedder, vector index, vocabulary) abort
predictor initialization. Everything else is caught at the stage boundary
inside a prediction request and turned into a degraded result.
"""

from typing import Optional


class SwipePredictionError(Exception):
    pass


class LoadError(SwipePredictionError):
    """
    An artifact is missing or could not be deserialized.

    Arguments:
    ----------
    component: str
        Human readable name of the pipeline component ("vocabulary", ...).
    path: Optional[str]
        Path of the artifact that failed to load.
    reason: str
        What went wrong.
    """
    def __init__(self, component: str, path: Optional[str], reason: str) -> None:
        self.component = component
        self.path = path
        self.reason = reason
        location = f" from '{path}'" if path is not None else ""
        super().__init__(f"Failed to load {component}{location}: {reason}")


class EncodeError(SwipePredictionError):
    pass


class EmptyPathError(EncodeError):
    def __init__(self) -> None:
        super().__init__("Swipe path is empty")


class SearchError(SwipePredictionError):
    pass


class IndexUnavailableError(SearchError):
    def __init__(self) -> None:
        super().__init__("Vector index is not loaded")


class NotFoundError(SwipePredictionError, KeyError):
    def __init__(self, what: str, key) -> None:
        self.what = what
        self.key = key
        super().__init__(f"{what} not found: {key!r}")

    def __str__(self) -> str:
        return self.args[0]


class RankError(SwipePredictionError):
    pass


class ModelUnavailableError(RankError):
    def __init__(self) -> None:
        super().__init__("Ranker model is not loaded")
