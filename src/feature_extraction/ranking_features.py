"""
Per-candidate features for the ranking model.

Most features are relative: they compare a candidate's signal with the
signals of all other candidates of the same prediction request
(min-max normalization, z-score, gap to best, percentile, ranks).
All statistics are computed from the current candidate set only.

The ranker is trained on the exact column order of `FEATURE_NAMES`.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Sequence

import numpy as np


EPSILON = 1e-6


FEATURE_NAMES = (
    # Raw DTW metrics and path metrics
    "dtw_raw",
    "dtw_normalized_by_max",
    "dtw_normalized_by_min",
    "dtw_normalized_by_sum",
    "len_swipe",
    "len_word",
    "path_length_ratio",
    "word_length",
    # Core signals
    "lm_score",
    "faiss_distance",
    "faiss_rank",
    "dtw_distance",
    "dtw_rank",
    # Min-max normalization
    "lm_normalized",
    "faiss_normalized",
    "dtw_normalized",
    # Z-score
    "lm_zscore",
    "faiss_zscore",
    "dtw_zscore",
    # Gap to best
    "lm_gap_to_best",
    "faiss_gap_to_best",
    "dtw_gap_to_best",
    # Percentiles
    "lm_percentile",
    "faiss_percentile",
    "dtw_percentile",
    # Rank agreement
    "rank_agreement",
    "min_rank",
    "is_top_faiss",
    "is_top_dtw",
    "is_top_in_both",
    # Log and inverse transforms
    "log_faiss_distance",
    "log_dtw_distance",
    "inv_faiss_distance",
    "inv_dtw_distance",
    # Rank reciprocals
    "faiss_rank_reciprocal",
    "dtw_rank_reciprocal",
    # Interactions
    "lm_faiss_interaction",
    "lm_dtw_interaction",
    "faiss_dtw_interaction",
)

N_FEATURES = len(FEATURE_NAMES)

LM_SCORE_COLUMN = FEATURE_NAMES.index("lm_score")
EMBEDDING_DISTANCE_COLUMN = FEATURE_NAMES.index("faiss_distance")


class RawCandidate(NamedTuple):
    """
    Signals measured for one candidate word before feature building.
    """
    word: str
    lm_score: float
    embedding_distance: float
    embedding_rank: int
    dtw_raw: float
    dtw_by_max: float
    dtw_by_min: float
    dtw_by_sum: float
    len_swipe: int
    len_word: int

    @property
    def word_length(self) -> int:
        return len(self.word)

    @property
    def path_length_ratio(self) -> float:
        return self.len_swipe / self.len_word if self.len_word > 0 else 0.0


@dataclass
class CandidateFeatures:
    word: str

    dtw_raw: float
    dtw_normalized_by_max: float
    dtw_normalized_by_min: float
    dtw_normalized_by_sum: float
    len_swipe: int
    len_word: int
    path_length_ratio: float
    word_length: int

    lm_score: float
    faiss_distance: float
    faiss_rank: int
    dtw_distance: float
    dtw_rank: int

    lm_normalized: float
    faiss_normalized: float
    dtw_normalized: float

    lm_zscore: float
    faiss_zscore: float
    dtw_zscore: float

    lm_gap_to_best: float
    faiss_gap_to_best: float
    dtw_gap_to_best: float

    lm_percentile: float
    faiss_percentile: float
    dtw_percentile: float

    rank_agreement: int
    min_rank: int
    is_top_faiss: float
    is_top_dtw: float
    is_top_in_both: float

    log_faiss_distance: float
    log_dtw_distance: float
    inv_faiss_distance: float
    inv_dtw_distance: float

    faiss_rank_reciprocal: float
    dtw_rank_reciprocal: float

    lm_faiss_interaction: float
    lm_dtw_interaction: float
    faiss_dtw_interaction: float

    def to_array(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in FEATURE_NAMES],
                        dtype=np.float64)


class ColumnStatistics:
    """
    Statistics of one signal over the candidate set.

    Arguments:
    ----------
    values: Sequence[float]
        The signal of every candidate.
    higher_is_better: bool
        True for the language model score, False for distances.
    """
    def __init__(self, values: Sequence[float], higher_is_better: bool) -> None:
        self.values = np.asarray(values, dtype=np.float64)
        self.higher_is_better = higher_is_better
        self.min = float(self.values.min())
        self.max = float(self.values.max())
        self.mean = float(self.values.mean())
        self.std = float(self.values.std())  # population std (ddof=0)
        self.n = len(self.values)

    def min_max(self, x: float) -> float:
        return (x - self.min) / (self.max - self.min + EPSILON)

    def zscore(self, x: float) -> float:
        return (x - self.mean) / (self.std + EPSILON)

    def gap_to_best(self, x: float) -> float:
        if self.higher_is_better:
            return self.max - x
        return x - self.min

    def percentile(self, x: float) -> float:
        """
        Fraction of candidates strictly worse than `x`.
        """
        if self.higher_is_better:
            n_worse = int((self.values < x).sum())
        else:
            n_worse = int((self.values > x).sum())
        return n_worse / self.n


def compute_ranks(values: Sequence[float]) -> List[int]:
    """
    1-based ascending ranks. Equal values are ranked by their position.
    """
    order = np.argsort(np.asarray(values, dtype=np.float64), kind='stable')
    ranks = [0] * len(order)
    for rank, idx in enumerate(order.tolist(), 1):
        ranks[idx] = rank
    return ranks


def compute_candidate_features(candidates: Sequence[RawCandidate]
                               ) -> List[CandidateFeatures]:
    """
    Builds the features of every candidate of one prediction request.
    Returns an empty list for an empty candidate set.
    """
    if not candidates:
        return []

    dtw_distances = [c.dtw_by_max for c in candidates]
    dtw_ranks = compute_ranks(dtw_distances)

    lm_stats = ColumnStatistics([c.lm_score for c in candidates], higher_is_better=True)
    faiss_stats = ColumnStatistics([c.embedding_distance for c in candidates],
                                   higher_is_better=False)
    dtw_stats = ColumnStatistics(dtw_distances, higher_is_better=False)

    return [
        _compute_enhanced_features(candidate, dtw_rank, lm_stats, faiss_stats, dtw_stats)
        for candidate, dtw_rank in zip(candidates, dtw_ranks)
    ]


def _compute_enhanced_features(c: RawCandidate,
                               dtw_rank: int,
                               lm_stats: ColumnStatistics,
                               faiss_stats: ColumnStatistics,
                               dtw_stats: ColumnStatistics) -> CandidateFeatures:
    lm = c.lm_score
    faiss_distance = c.embedding_distance
    faiss_rank = c.embedding_rank
    dtw_distance = c.dtw_by_max

    return CandidateFeatures(
        word=c.word,

        dtw_raw=c.dtw_raw,
        dtw_normalized_by_max=c.dtw_by_max,
        dtw_normalized_by_min=c.dtw_by_min,
        dtw_normalized_by_sum=c.dtw_by_sum,
        len_swipe=c.len_swipe,
        len_word=c.len_word,
        path_length_ratio=c.path_length_ratio,
        word_length=c.word_length,

        lm_score=lm,
        faiss_distance=faiss_distance,
        faiss_rank=faiss_rank,
        dtw_distance=dtw_distance,
        dtw_rank=dtw_rank,

        lm_normalized=lm_stats.min_max(lm),
        faiss_normalized=faiss_stats.min_max(faiss_distance),
        dtw_normalized=dtw_stats.min_max(dtw_distance),

        lm_zscore=lm_stats.zscore(lm),
        faiss_zscore=faiss_stats.zscore(faiss_distance),
        dtw_zscore=dtw_stats.zscore(dtw_distance),

        lm_gap_to_best=lm_stats.gap_to_best(lm),
        faiss_gap_to_best=faiss_stats.gap_to_best(faiss_distance),
        dtw_gap_to_best=dtw_stats.gap_to_best(dtw_distance),

        lm_percentile=lm_stats.percentile(lm),
        faiss_percentile=faiss_stats.percentile(faiss_distance),
        dtw_percentile=dtw_stats.percentile(dtw_distance),

        rank_agreement=abs(faiss_rank - dtw_rank),
        min_rank=min(faiss_rank, dtw_rank),
        is_top_faiss=float(faiss_rank == 1),
        is_top_dtw=float(dtw_rank == 1),
        is_top_in_both=float(faiss_rank == 1 and dtw_rank == 1),

        # Distances of inner product indexes may be slightly negative
        log_faiss_distance=_safe_log(faiss_distance + EPSILON),
        log_dtw_distance=_safe_log(dtw_distance + EPSILON),
        inv_faiss_distance=1.0 / (faiss_distance + EPSILON),
        inv_dtw_distance=1.0 / (dtw_distance + EPSILON),

        faiss_rank_reciprocal=1.0 / faiss_rank,
        dtw_rank_reciprocal=1.0 / dtw_rank,

        lm_faiss_interaction=lm * faiss_distance,
        lm_dtw_interaction=lm * dtw_distance,
        faiss_dtw_interaction=faiss_distance * dtw_distance,
    )


def _safe_log(x: float) -> float:
    return float(np.log(x)) if x > 0 else float(np.log(EPSILON))


def features_to_matrix(features: Sequence[CandidateFeatures]) -> np.ndarray:
    """
    Stacks feature vectors into a (n_candidates, N_FEATURES) float64 matrix.
    """
    if not features:
        return np.empty((0, N_FEATURES), dtype=np.float64)
    return np.stack([f.to_array() for f in features])
