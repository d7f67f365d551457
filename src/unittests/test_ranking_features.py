import sys; import os; sys.path.insert(1, os.path.join(os.getcwd(), "src"))


import unittest
from math import isclose, log
from dataclasses import fields

import numpy as np

from feature_extraction.ranking_features import (
    FEATURE_NAMES,
    N_FEATURES,
    EPSILON,
    LM_SCORE_COLUMN,
    EMBEDDING_DISTANCE_COLUMN,
    CandidateFeatures,
    RawCandidate,
    compute_ranks,
    compute_candidate_features,
    features_to_matrix,
)


def make_candidate(word, lm_score, embedding_distance, embedding_rank, dtw_by_max,
                   len_swipe=10, len_word=4) -> RawCandidate:
    return RawCandidate(
        word=word,
        lm_score=lm_score,
        embedding_distance=embedding_distance,
        embedding_rank=embedding_rank,
        dtw_raw=dtw_by_max * max(len_swipe, len_word),
        dtw_by_max=dtw_by_max,
        dtw_by_min=dtw_by_max * max(len_swipe, len_word) / min(len_swipe, len_word),
        dtw_by_sum=dtw_by_max * max(len_swipe, len_word) / (len_swipe + len_word),
        len_swipe=len_swipe,
        len_word=len_word,
    )


class TestFeatureOrder(unittest.TestCase):

    def test_feature_count(self):
        self.assertEqual(N_FEATURES, 39)
        self.assertEqual(len(set(FEATURE_NAMES)), 39)

    def test_order_boundaries(self):
        self.assertEqual(FEATURE_NAMES[0], "dtw_raw")
        self.assertEqual(FEATURE_NAMES[8], "lm_score")
        self.assertEqual(FEATURE_NAMES[9], "faiss_distance")
        self.assertEqual(FEATURE_NAMES[25], "rank_agreement")
        self.assertEqual(FEATURE_NAMES[-1], "faiss_dtw_interaction")
        self.assertEqual(LM_SCORE_COLUMN, 8)
        self.assertEqual(EMBEDDING_DISTANCE_COLUMN, 9)
        self.assertEqual(tuple(f.name for f in fields(CandidateFeatures))[1:], FEATURE_NAMES)


class TestComputeRanks(unittest.TestCase):

    def test_ascending(self):
        self.assertEqual(compute_ranks([0.3, 0.1, 0.2]), [3, 1, 2])

    def test_ties_keep_candidate_order(self):
        self.assertEqual(compute_ranks([0.5, 0.1, 0.5, 0.1]), [3, 1, 4, 2])


class TestComputeCandidateFeatures(unittest.TestCase):

    def setUp(self) -> None:
        self.candidates = [
            make_candidate("chat", -2.0, 0.1, 1, 3.0),
            make_candidate("chatte", -4.0, 0.1, 1, 5.0, len_word=6),
            make_candidate("char", -3.0, 0.4, 2, 1.0),
            make_candidate("chas", -6.0, 0.9, 3, 8.0),
        ]
        self.features = compute_candidate_features(self.candidates)
        self.matrix = features_to_matrix(self.features)

    def test_empty_set(self):
        self.assertEqual(compute_candidate_features([]), [])
        self.assertEqual(features_to_matrix([]).shape, (0, N_FEATURES))

    def test_matrix_shape_and_order(self):
        self.assertEqual(self.matrix.shape, (4, N_FEATURES))
        self.assertEqual(self.matrix.dtype, np.float64)
        self.assertEqual(self.matrix[0, LM_SCORE_COLUMN], -2.0)
        self.assertEqual(self.matrix[2, EMBEDDING_DISTANCE_COLUMN], 0.4)
        for i, name in enumerate(FEATURE_NAMES):
            self.assertEqual(self.matrix[1, i], float(getattr(self.features[1], name)))

    def test_words_kept_in_order(self):
        self.assertEqual([f.word for f in self.features],
                         ["chat", "chatte", "char", "chas"])

    def test_dtw_rank(self):
        self.assertEqual([f.dtw_rank for f in self.features], [2, 3, 1, 4])
        self.assertEqual([f.is_top_dtw for f in self.features], [0.0, 0.0, 1.0, 0.0])

    def test_rank_agreement(self):
        chat = self.features[0]
        self.assertEqual(chat.rank_agreement, 1)
        self.assertEqual(chat.min_rank, 1)
        self.assertEqual(chat.is_top_faiss, 1.0)
        self.assertEqual(chat.is_top_in_both, 0.0)

    def test_percentiles_in_unit_interval(self):
        for f in self.features:
            for value in (f.lm_percentile, f.faiss_percentile, f.dtw_percentile):
                self.assertGreaterEqual(value, 0.0)
                self.assertLessEqual(value, 1.0)
        # 3 of 4 candidates have a lower lm score than "chat"
        self.assertEqual(self.features[0].lm_percentile, 0.75)
        # Nobody has a larger embedding distance than "chas"
        self.assertEqual(self.features[3].faiss_percentile, 0.0)

    def test_zscores_have_zero_mean(self):
        for name in ("lm_zscore", "faiss_zscore", "dtw_zscore"):
            values = [getattr(f, name) for f in self.features]
            self.assertTrue(isclose(sum(values) / len(values), 0.0, abs_tol=1e-9))

    def test_min_max_range(self):
        lm_normalized = [f.lm_normalized for f in self.features]
        self.assertTrue(isclose(max(lm_normalized), 1.0, rel_tol=1e-5))
        self.assertEqual(min(lm_normalized), 0.0)

    def test_gap_to_best(self):
        self.assertEqual(self.features[0].lm_gap_to_best, 0.0)
        self.assertTrue(isclose(self.features[3].lm_gap_to_best, 4.0))
        self.assertEqual(self.features[2].dtw_gap_to_best, 0.0)
        self.assertTrue(isclose(self.features[3].faiss_gap_to_best, 0.8))

    def test_path_metrics(self):
        chatte = self.features[1]
        self.assertEqual(chatte.word_length, 6)
        self.assertEqual(chatte.len_word, 6)
        self.assertTrue(isclose(chatte.path_length_ratio, 10 / 6))

    def test_transforms(self):
        char = self.features[2]
        self.assertTrue(isclose(char.log_faiss_distance, log(0.4 + EPSILON)))
        self.assertTrue(isclose(char.inv_dtw_distance, 1.0 / (1.0 + EPSILON)))
        self.assertEqual(char.faiss_rank_reciprocal, 0.5)
        self.assertEqual(char.dtw_rank_reciprocal, 1.0)
        self.assertTrue(isclose(char.lm_dtw_interaction, -3.0))

    def test_single_candidate_is_finite(self):
        features = compute_candidate_features([make_candidate("a", 0.0, 0.0, 1, 0.0)])
        matrix = features_to_matrix(features)
        self.assertTrue(np.all(np.isfinite(matrix)))
        self.assertEqual(features[0].is_top_in_both, 1.0)

    def test_zero_word_path(self):
        candidate = make_candidate("€", -1.0, 0.2, 1, 0.5, len_word=1)._replace(len_word=0)
        self.assertEqual(candidate.path_length_ratio, 0.0)


if __name__ == "__main__":
    unittest.main()
