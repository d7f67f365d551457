from typing import Dict, Iterable, List, NamedTuple, Tuple
from types import MappingProxyType
import json
import os
import logging

import msgpack

from errors import LoadError, NotFoundError


logger = logging.getLogger(__name__)


MSGPACK_EXTENSIONS = ('.msgpck', '.msgpack', '.mpk')


class ExpandedWord(NamedTuple):
    word: str
    cluster_id: int
    canonical_form: str
    embedding_distance: float
    embedding_rank: int  # 1-based, by cluster encounter order


class VocabularyStore:
    """
    Maps cluster ids to word spellings.

    Each cluster groups spellings that share the same embedding.
    The first spelling of a cluster is its canonical form: the
    ideal keyboard path of every word in the cluster is derived from it.

    The store is read-only after construction.
    """
    def __init__(self, cluster_to_words: Dict[int, List[str]]) -> None:
        self._cluster_to_words = MappingProxyType(
            {cluster_id: tuple(words) for cluster_id, words in cluster_to_words.items()})

    @classmethod
    def load(cls, path: str) -> "VocabularyStore":
        """
        Loads a vocabulary from a msgpack or a JSON file.
        Both store a map from cluster id to a list of words.

        Raises:
        -------
        LoadError
            If the file is missing, can't be deserialized or doesn't
            have the expected structure.
        """
        if not os.path.isfile(path):
            raise LoadError("vocabulary", path, "file not found")
        try:
            raw = _read_raw_vocab(path)
        except (OSError, TypeError, ValueError, msgpack.UnpackException) as e:
            raise LoadError("vocabulary", path, f"can't deserialize: {e}") from e

        try:
            cluster_to_words = _validate_raw_vocab(raw)
        except ValueError as e:
            raise LoadError("vocabulary", path, str(e)) from e

        vocab = cls(cluster_to_words)
        logger.info(f"Vocabulary loaded from {path} with {len(vocab)} clusters")
        return vocab

    def __len__(self) -> int:
        return len(self._cluster_to_words)

    def __contains__(self, cluster_id: int) -> bool:
        return cluster_id in self._cluster_to_words

    def cluster_ids(self) -> List[int]:
        return sorted(self._cluster_to_words)

    def lookup(self, cluster_id: int) -> List[str]:
        try:
            return list(self._cluster_to_words[cluster_id])
        except KeyError:
            raise NotFoundError("cluster", cluster_id) from None

    def canonical_form(self, cluster_id: int) -> str:
        try:
            return self._cluster_to_words[cluster_id][0]
        except KeyError:
            raise NotFoundError("cluster", cluster_id) from None

    def expand_clusters(self,
                        neighbors: Iterable[Tuple[int, float]]
                        ) -> List[ExpandedWord]:
        """
        Expands nearest clusters into a list of unique candidate words.

        Arguments:
        ----------
        neighbors: Iterable[Tuple[int, float]]
            (cluster_id, distance) pairs, nearest first.

        Returns:
        --------
        List[ExpandedWord]
            Words in neighbor order. A word that appears in several
            clusters is kept only for the first (nearest) one.
            Every neighbor consumes an embedding rank, even a cluster
            that is unknown to the vocabulary or whose words were all seen.
        """
        seen_words = set()
        expanded = []
        for rank, (cluster_id, distance) in enumerate(neighbors, 1):
            words = self._cluster_to_words.get(cluster_id)
            if words is None:
                logger.warning(f"Cluster {cluster_id} returned by the index "
                               "is absent from the vocabulary")
                continue
            canonical = words[0]
            for word in words:
                if word in seen_words:
                    continue
                seen_words.add(word)
                expanded.append(ExpandedWord(
                    word, cluster_id, canonical, float(distance), rank))
        return expanded


def _read_raw_vocab(path: str):
    if path.endswith('.json'):
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    with open(path, "rb") as f:
        # strict_map_key=False: cluster ids are integer map keys
        return msgpack.unpackb(f.read(), raw=False, strict_map_key=False)


def _validate_raw_vocab(raw) -> Dict[int, List[str]]:
    if not isinstance(raw, dict):
        raise ValueError(f"expected a map of cluster id to words, got {type(raw).__name__}")

    cluster_to_words = {}
    for key, words in raw.items():
        # msgpack keys are ints, JSON keys are their decimal strings
        if isinstance(key, bool) or not isinstance(key, (int, str)):
            raise ValueError(f"cluster id is not an integer: {key!r}")
        try:
            cluster_id = int(key)
        except ValueError:
            raise ValueError(f"cluster id is not an integer: {key!r}") from None
        if cluster_id < 0:
            raise ValueError(f"cluster id is negative: {cluster_id}")
        if not isinstance(words, list) or not words:
            raise ValueError(f"cluster {cluster_id} has no words")
        if not all(isinstance(word, str) for word in words):
            raise ValueError(f"cluster {cluster_id} contains a non-string word")
        cluster_to_words[cluster_id] = words
    return cluster_to_words
