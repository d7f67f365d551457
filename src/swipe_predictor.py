"""
Swipe path -> ranked list of words.

swipe path
  -> swipe embedder (embedding)
  -> vector index (nearest clusters)
  -> vocabulary (unique candidate words)
  -> DTW against each word's ideal path + language model score
  -> ranking features
  -> ranker (LightGBM or the linear fallback)

The embedder, the index and the vocabulary are required; the language
model and the ranker are optional and are replaced by neutral / fallback
implementations when absent. All loaded artifacts are read-only, so one
predictor can serve concurrent requests.
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Sequence
import logging

from errors import SwipePredictionError
from keyboard_layouts import KeyboardLayout, load_layout, path_from_points
from vocabulary_store import VocabularyStore
from vector_index import Neighbor, VectorIndex
from swipe_embedders import SwipeEmbedder, load_swipe_embedder
from language_models import (
    LanguageModelScorer,
    NullLanguageModel,
    load_language_model,
    split_context,
)
from rankers import (
    Ranker,
    LinearFallbackRanker,
    load_ranker,
    score_with_fallback,
    stable_argsort_desc,
)
from feature_extraction.dtw import DTWDistances, compute_dtw_distances
from feature_extraction.ranking_features import (
    CandidateFeatures,
    RawCandidate,
    compute_candidate_features,
    features_to_matrix,
)
from predictor_config import get_artifact_path


logger = logging.getLogger(__name__)


class PipelineState(Enum):
    UNINITIALIZED = "uninitialized"
    MODELS_LOADING = "models_loading"
    READY = "ready"


class RequestStage(Enum):
    IDLE = "idle"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    FEATURE_BUILDING = "feature_building"
    RANKING = "ranking"
    DONE = "done"


class RankedWord(NamedTuple):
    word: str
    score: float
    features: CandidateFeatures


class SwipePredictor:
    def __init__(self,
                 vocabulary: VocabularyStore,
                 index: VectorIndex,
                 embedder: SwipeEmbedder,
                 layout: KeyboardLayout,
                 language_model: Optional[LanguageModelScorer] = None,
                 ranker: Optional[Ranker] = None,
                 k_nearest: int = 100,
                 dtw_window: Optional[int] = None,
                 fallback_embedding_weight: float = 0.5,
                 top_k: int = 5) -> None:
        """
        Arguments:
        ----------
        language_model: Optional[LanguageModelScorer]
            If None, every candidate gets a neutral (0.0) language model score.
        ranker: Optional[Ranker]
            If None, candidates are ranked by the linear fallback.
        k_nearest: int
            Number of nearest clusters requested from the index.
        dtw_window: Optional[int]
            Sakoe-Chiba band of the DTW. None means unbounded.
        """
        self.vocabulary = vocabulary
        self.index = index
        self.embedder = embedder
        self.layout = layout
        self.language_model = language_model or NullLanguageModel()
        self.fallback_ranker = LinearFallbackRanker(fallback_embedding_weight)
        self.ranker = ranker if ranker is not None else self.fallback_ranker
        self.k_nearest = k_nearest
        self.dtw_window = dtw_window
        self.top_k = top_k

    @classmethod
    def from_config(cls, config: dict) -> "SwipePredictor":
        """
        Loads all artifacts described by a predictor config.

        Raises:
        -------
        LoadError
            If the swipe encoder, the vocabulary or the vector index
            can't be loaded.
        """
        layout = load_layout(config["layout"], config.get("grid_name"))

        embedder = load_swipe_embedder(
            get_artifact_path(config, "swipe_encoder"),
            config["embedder_backend"],
            config["max_swipe_len"],
            config["pad_value"])
        vocabulary = VocabularyStore.load(get_artifact_path(config, "vocabulary"))
        index = VectorIndex.load(get_artifact_path(config, "vector_index"),
                                 config["index_metric"])

        language_model = load_language_model(
            get_artifact_path(config, "language_model"), config["context_words"])
        ranker = load_ranker(
            get_artifact_path(config, "ranker"), config["fallback_embedding_weight"])

        return cls(vocabulary, index, embedder, layout,
                   language_model=language_model,
                   ranker=ranker,
                   k_nearest=config["k_nearest"],
                   dtw_window=config["dtw_window"],
                   fallback_embedding_weight=config["fallback_embedding_weight"],
                   top_k=config["top_k"])

    @property
    def uses_fallback_ranker(self) -> bool:
        return isinstance(self.ranker, LinearFallbackRanker)

    def build_candidates(self,
                         swipe_path: Sequence[Sequence[float]],
                         neighbors: Sequence[Neighbor],
                         context_text: str = "") -> List[RawCandidate]:
        """
        Expands the nearest clusters into unique words and measures
        the DTW and language model signals of each word.
        """
        expanded = self.vocabulary.expand_clusters(neighbors)
        if not expanded:
            return []

        swipe = path_from_points(swipe_path)
        context = self.language_model.context_state(
            split_context(context_text, self.language_model.context_words))

        # All words of a cluster share the ideal path of its canonical form
        cluster_to_dtw: Dict[int, DTWDistances] = {}

        candidates = []
        for expanded_word in expanded:
            dtw = cluster_to_dtw.get(expanded_word.cluster_id)
            if dtw is None:
                word_path = self.layout.word_path(expanded_word.canonical_form)
                dtw = compute_dtw_distances(swipe, word_path, self.dtw_window)
                cluster_to_dtw[expanded_word.cluster_id] = dtw

            lm_score = self.language_model.score_candidate(context, expanded_word.word)

            candidates.append(RawCandidate(
                word=expanded_word.word,
                lm_score=lm_score,
                embedding_distance=expanded_word.embedding_distance,
                embedding_rank=expanded_word.embedding_rank,
                dtw_raw=dtw.raw,
                dtw_by_max=dtw.by_max,
                dtw_by_min=dtw.by_min,
                dtw_by_sum=dtw.by_sum,
                len_swipe=dtw.len_swipe,
                len_word=dtw.len_word,
            ))
        return candidates

    def rank_candidates(self, candidates: Sequence[RawCandidate]) -> List[RankedWord]:
        features = compute_candidate_features(candidates)
        if not features:
            return []
        scores = score_with_fallback(
            self.ranker, self.fallback_ranker, features_to_matrix(features))
        return [RankedWord(features[i].word, float(scores[i]), features[i])
                for i in stable_argsort_desc(scores)]

    def predict_ranked(self,
                       swipe_path: Sequence[Sequence[float]],
                       context_text: str = "") -> List[RankedWord]:
        """
        Runs the whole pipeline. Returns all candidates, best first.

        Never raises on a per-request failure: the failure is logged
        and an empty list ("no prediction") is returned.
        """
        stage = RequestStage.IDLE
        try:
            stage = RequestStage.EMBEDDING
            embedding = self.embedder.encode(swipe_path)

            stage = RequestStage.SEARCHING
            neighbors = self.index.search(embedding, self.k_nearest)
            if not neighbors:
                logger.warning("No candidates to rank")
                return []

            stage = RequestStage.FEATURE_BUILDING
            candidates = self.build_candidates(swipe_path, neighbors, context_text)
            if not candidates:
                logger.warning("No valid candidate words after processing")
                return []

            stage = RequestStage.RANKING
            ranked = self.rank_candidates(candidates)
            logger.debug(f"Top predictions: {[r.word for r in ranked[:5]]}")
            return ranked
        except SwipePredictionError as e:
            logger.warning(f"Prediction failed at stage '{stage.value}': {e}")
            return []
        except Exception:
            logger.exception(f"Unexpected error at stage '{stage.value}'")
            return []
        finally:
            logger.debug(f"Request {RequestStage.DONE.value} after stage '{stage.value}'")

    def predict_top_k(self,
                      swipe_path: Sequence[Sequence[float]],
                      context_text: str = "",
                      k: Optional[int] = None) -> List[str]:
        k = self.top_k if k is None else k
        return [r.word for r in self.predict_ranked(swipe_path, context_text)[:k]]

    def predict(self,
                swipe_path: Sequence[Sequence[float]],
                context_text: str = "") -> str:
        """
        Returns the best word or an empty string if there is no prediction.
        """
        ranked = self.predict_ranked(swipe_path, context_text)
        return ranked[0].word if ranked else ""

