from typing import List, Optional, Protocol
import os
import logging

import numpy as np
import lightgbm as lgb

from errors import LoadError, RankError, ModelUnavailableError
from feature_extraction.ranking_features import (
    N_FEATURES,
    LM_SCORE_COLUMN,
    EMBEDDING_DISTANCE_COLUMN,
)


logger = logging.getLogger(__name__)


FALLBACK_EMBEDDING_WEIGHT = 0.5


def stable_argsort_desc(scores: np.ndarray) -> List[int]:
    """
    Indices ordering `scores` from highest to lowest.
    Equal scores keep their original order.
    """
    scores = np.asarray(scores, dtype=np.float64)
    return np.argsort(-scores, kind='stable').tolist()


def _check_feature_matrix(features: np.ndarray) -> np.ndarray:
    features = np.asarray(features, dtype=np.float64)
    if features.ndim != 2 or features.shape[1] != N_FEATURES:
        raise ValueError(f"Expected a feature matrix of shape (n, {N_FEATURES}), "
                         f"got {features.shape}")
    return features


class Ranker(Protocol):
    def score(self, features: np.ndarray) -> np.ndarray:
        """
        Returns one score per row of the (n, N_FEATURES) feature matrix.
        Higher is better.
        """
        ...

    def rank(self, features: np.ndarray) -> List[int]:
        """
        Returns row indices ordered by descending score.
        """
        ...


class LinearFallbackRanker:
    """
    Ranks by `lm_score - embedding_weight * embedding_distance`.

    Is used when the ranking model is absent or fails.
    """
    def __init__(self, embedding_weight: float = FALLBACK_EMBEDDING_WEIGHT) -> None:
        self.embedding_weight = embedding_weight

    def score(self, features: np.ndarray) -> np.ndarray:
        features = _check_feature_matrix(features)
        return (features[:, LM_SCORE_COLUMN]
                - self.embedding_weight * features[:, EMBEDDING_DISTANCE_COLUMN])

    def rank(self, features: np.ndarray) -> List[int]:
        return stable_argsort_desc(self.score(features))


class LightGBMRanker:
    """
    Gradient boosted ranking model trained on the ranking features.

    Every row is scored independently.
    """
    def __init__(self, booster: Optional[lgb.Booster]) -> None:
        self.booster = booster

    @classmethod
    def load(cls, model_path: str) -> "LightGBMRanker":
        if not os.path.isfile(model_path):
            raise LoadError("ranker", model_path, "file not found")
        try:
            booster = lgb.Booster(model_file=model_path)
        except lgb.basic.LightGBMError as e:
            raise LoadError("ranker", model_path, str(e)) from e

        n_features = booster.num_feature()
        if n_features != N_FEATURES:
            raise LoadError("ranker", model_path,
                            f"model expects {n_features} features, "
                            f"ranking features have {N_FEATURES}")
        logger.info(f"Ranker loaded from {model_path} "
                    f"with {booster.num_trees()} trees")
        return cls(booster)

    def is_model_loaded(self) -> bool:
        return self.booster is not None

    def score(self, features: np.ndarray) -> np.ndarray:
        if self.booster is None:
            raise ModelUnavailableError()
        features = _check_feature_matrix(features)
        if len(features) == 0:
            return np.empty(0, dtype=np.float64)
        try:
            scores = self.booster.predict(features)
        except lgb.basic.LightGBMError as e:
            raise RankError(f"Ranker prediction failed: {e}") from e
        return np.asarray(scores, dtype=np.float64).reshape(-1)

    def rank(self, features: np.ndarray) -> List[int]:
        return stable_argsort_desc(self.score(features))


def score_with_fallback(ranker: Ranker,
                        fallback: LinearFallbackRanker,
                        features: np.ndarray) -> np.ndarray:
    """
    Scores with `ranker`, switching to `fallback` if it raises a RankError.
    """
    if ranker is fallback:
        return fallback.score(features)
    try:
        return ranker.score(features)
    except RankError as e:
        logger.warning(f"{e}. Using fallback scoring")
        return fallback.score(features)


def load_ranker(model_path: Optional[str],
                fallback_embedding_weight: float = FALLBACK_EMBEDDING_WEIGHT) -> Ranker:
    """
    Returns the LightGBM ranker or, if the model is absent or can't be
    loaded, the linear fallback. The ranking model is optional.
    """
    if not model_path or not os.path.isfile(model_path):
        logger.info(f"Ranker model not found (optional): {model_path}. "
                    "Will use fallback scoring for word prediction")
        return LinearFallbackRanker(fallback_embedding_weight)
    try:
        return LightGBMRanker.load(model_path)
    except LoadError as e:
        logger.warning(f"{e}. Will use fallback scoring for word prediction")
        return LinearFallbackRanker(fallback_embedding_weight)
