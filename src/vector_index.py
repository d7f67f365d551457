from typing import List, NamedTuple, Optional
import os
import logging

import numpy as np
import faiss

from errors import LoadError, SearchError, IndexUnavailableError


logger = logging.getLogger(__name__)


METRICS = ("auto", "l2", "inner_product")


class Neighbor(NamedTuple):
    cluster_id: int
    distance: float


class VectorIndex:
    """
    Nearest neighbor search over word embeddings.

    Vector ids of the underlying FAISS index are vocabulary cluster ids.

    Distances are always reported so that lower means more similar:
    L2 indexes return the (squared) L2 distance as is, inner product
    indexes return `1 - score`. They are not probabilities and have
    no fixed range.

    Note: for inner product indexes this differs from the raw FAISS
    score used by older callers, where higher meant more similar.
    Thresholds or rankers fit on raw scores must be refit (or fed
    `1 - distance`).
    """
    def __init__(self, index: faiss.Index, metric: str = "auto") -> None:
        if metric not in METRICS:
            raise ValueError(f"Unknown metric: {metric}. Expected one of {METRICS}")
        self.index = index
        self.metric = self._resolve_metric(index, metric)

    @staticmethod
    def _resolve_metric(index: faiss.Index, metric: str) -> str:
        if metric != "auto" or index is None:
            return "l2" if metric == "auto" else metric
        if index.metric_type == faiss.METRIC_INNER_PRODUCT:
            return "inner_product"
        return "l2"

    @classmethod
    def load(cls, path: str, metric: str = "auto") -> "VectorIndex":
        if metric not in METRICS:
            raise LoadError("vector index", path,
                            f"unknown metric '{metric}', expected one of {METRICS}")
        if not os.path.isfile(path):
            raise LoadError("vector index", path, "file not found")
        try:
            index = faiss.read_index(path)
        except RuntimeError as e:
            raise LoadError("vector index", path, str(e)) from e
        vector_index = cls(index, metric)
        logger.info(f"Vector index loaded from {path}: {vector_index.index.ntotal} vectors, "
                    f"dim = {vector_index.dimension}, metric = {vector_index.metric}")
        return vector_index

    @property
    def dimension(self) -> int:
        return self.index.d

    def __len__(self) -> int:
        return 0 if self.index is None else self.index.ntotal

    def search(self, embedding: np.ndarray, k: int) -> List[Neighbor]:
        """
        Returns up to `k` nearest clusters, nearest first.
        Ties in distance are broken by cluster id.
        """
        if self.index is None:
            raise IndexUnavailableError()

        k = min(k, self.index.ntotal)
        if k <= 0:
            return []

        query = np.ascontiguousarray(embedding, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise SearchError(f"Embedding dimension {query.shape[1]} doesn't match "
                              f"index dimension {self.dimension}")

        distances, ids = self.index.search(query, k)

        neighbors = []
        for cluster_id, distance in zip(ids[0].tolist(), distances[0].tolist()):
            if cluster_id == -1:
                continue
            if self.metric == "inner_product":
                distance = 1.0 - distance
            neighbors.append(Neighbor(int(cluster_id), float(distance)))

        neighbors.sort(key=lambda n: (n.distance, n.cluster_id))
        return neighbors


def load_vector_index(path: str, metric: str = "auto",
                      expected_dim: Optional[int] = None) -> VectorIndex:
    vector_index = VectorIndex.load(path, metric)
    if expected_dim is not None and vector_index.dimension != expected_dim:
        raise LoadError("vector index", path,
                        f"dimension {vector_index.dimension} doesn't match "
                        f"embedding dimension {expected_dim}")
    return vector_index
