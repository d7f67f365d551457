import sys; import os; sys.path.insert(1, os.path.join(os.getcwd(), "src"))


import unittest
import tempfile

import numpy as np
import faiss

from errors import LoadError, SearchError, IndexUnavailableError
from vector_index import VectorIndex, load_vector_index


DIM = 4


def make_index(vectors: np.ndarray, ids, index_type=faiss.IndexFlatL2) -> faiss.Index:
    index = faiss.IndexIDMap(index_type(vectors.shape[1]))
    index.add_with_ids(np.ascontiguousarray(vectors, dtype=np.float32),
                       np.asarray(ids, dtype=np.int64))
    return index


class TestVectorIndexL2(unittest.TestCase):

    def setUp(self) -> None:
        self.vectors = np.eye(DIM, dtype=np.float32)
        self.ids = [10, 20, 30, 40]
        self.index = VectorIndex(make_index(self.vectors, self.ids))

    def test_metric(self):
        self.assertEqual(self.index.metric, "l2")
        self.assertEqual(self.index.dimension, DIM)
        self.assertEqual(len(self.index), 4)

    def test_nearest_first(self):
        query = np.array([0.9, 0.1, 0, 0], dtype=np.float32)
        neighbors = self.index.search(query, 2)
        self.assertEqual([n.cluster_id for n in neighbors], [10, 20])
        self.assertLess(neighbors[0].distance, neighbors[1].distance)

    def test_k_larger_than_index(self):
        neighbors = self.index.search(self.vectors[0], 100)
        self.assertEqual(len(neighbors), 4)
        distances = [n.distance for n in neighbors]
        self.assertEqual(distances, sorted(distances))

    def test_ties_broken_by_cluster_id(self):
        neighbors = self.index.search(np.zeros(DIM, dtype=np.float32), 4)
        self.assertEqual([n.cluster_id for n in neighbors], [10, 20, 30, 40])

    def test_non_positive_k(self):
        self.assertEqual(self.index.search(self.vectors[0], 0), [])

    def test_dimension_mismatch(self):
        with self.assertRaises(SearchError):
            self.index.search(np.zeros(DIM + 1, dtype=np.float32), 2)

    def test_empty_index(self):
        index = VectorIndex(faiss.IndexFlatL2(DIM))
        self.assertEqual(index.search(np.zeros(DIM, dtype=np.float32), 5), [])

    def test_unavailable_index(self):
        index = VectorIndex(None)
        self.assertEqual(len(index), 0)
        with self.assertRaises(IndexUnavailableError):
            index.search(np.zeros(DIM, dtype=np.float32), 5)

    def test_unknown_metric(self):
        with self.assertRaises(ValueError):
            VectorIndex(faiss.IndexFlatL2(DIM), "cosine")


class TestVectorIndexInnerProduct(unittest.TestCase):

    def test_lower_distance_is_more_similar(self):
        vectors = np.eye(DIM, dtype=np.float32)
        index = VectorIndex(make_index(vectors, [1, 2, 3, 4], faiss.IndexFlatIP))
        self.assertEqual(index.metric, "inner_product")

        query = np.array([0.8, 0.6, 0, 0], dtype=np.float32)
        neighbors = index.search(query, 3)
        self.assertEqual([n.cluster_id for n in neighbors[:2]], [1, 2])
        self.assertAlmostEqual(neighbors[0].distance, 0.2, places=5)
        self.assertAlmostEqual(neighbors[1].distance, 0.4, places=5)


class TestVectorIndexLoading(unittest.TestCase):

    def setUp(self) -> None:
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp_dir.name, "index.faiss")

    def tearDown(self) -> None:
        self.tmp_dir.cleanup()

    def test_round_trip(self):
        faiss.write_index(make_index(np.eye(DIM, dtype=np.float32), [5, 6, 7, 8]), self.path)
        index = load_vector_index(self.path, expected_dim=DIM)
        self.assertEqual(index.search(np.eye(DIM, dtype=np.float32)[2], 1)[0].cluster_id, 7)

    def test_expected_dimension(self):
        faiss.write_index(faiss.IndexFlatL2(DIM), self.path)
        with self.assertRaises(LoadError):
            load_vector_index(self.path, expected_dim=DIM * 2)

    def test_missing_file(self):
        with self.assertRaises(LoadError):
            VectorIndex.load(self.path)

    def test_corrupt_file(self):
        with open(self.path, "wb") as f:
            f.write(b"garbage")
        with self.assertRaises(LoadError):
            VectorIndex.load(self.path)

    def test_unknown_metric(self):
        faiss.write_index(faiss.IndexFlatL2(DIM), self.path)
        with self.assertRaises(LoadError):
            VectorIndex.load(self.path, "cosine")


if __name__ == "__main__":
    unittest.main()
