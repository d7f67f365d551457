import sys; import os; sys.path.insert(1, os.path.join(os.getcwd(), "src"))


import unittest
import tempfile
import json

import numpy as np
import faiss

from keyboard_layouts import get_layout
from vocabulary_store import VocabularyStore
from vector_index import VectorIndex
from swipe_embedders import OnnxSwipeEmbedder
from swipe_predictor import SwipePredictor
from predict_swipes import (
    get_swipe_record_from_json_line,
    log_metrics,
    predict_records,
    read_swipe_records,
)


class FixedEmbeddingSession:
    def __init__(self, embedding) -> None:
        self.embedding = np.asarray(embedding, dtype=np.float32).reshape(1, -1)

    def run(self, output_names, feed):
        return [self.embedding]


def make_line(word, xs, ys, **extra) -> str:
    data = {"curve": {"x": xs, "y": ys, "t": list(range(len(xs))), "grid_name": "default"}}
    if word is not None:
        data["word"] = word
    data.update(extra)
    return json.dumps(data)


class TestSwipeRecords(unittest.TestCase):

    def test_parse_line(self):
        record = get_swipe_record_from_json_line(make_line("sac", [1, 2], [3, 4], context="je"))
        self.assertEqual(record.points, [[1.0, 3.0], [2.0, 4.0]])
        self.assertEqual(record.word, "sac")
        self.assertEqual(record.grid_name, "default")
        self.assertEqual(record.context, "je")

    def test_parse_line_without_word(self):
        record = get_swipe_record_from_json_line(make_line(None, [1], [3]))
        self.assertIsNone(record.word)
        self.assertEqual(record.context, "")

    def test_mismatched_coordinates(self):
        with self.assertRaises(ValueError):
            get_swipe_record_from_json_line(make_line("sac", [1, 2], [3]))

    def test_read_skips_blank_lines(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "swipes.jsonl")
            with open(path, "w", encoding="utf-8") as f:
                f.write(make_line("sac", [1], [2]) + "\n\n" + make_line("sec", [3], [4]) + "\n")
            records = list(read_swipe_records(path))
        self.assertEqual([r.word for r in records], ["sac", "sec"])


class TestPredictRecords(unittest.TestCase):

    def test_predict_and_log_metrics(self):
        index = faiss.IndexIDMap(faiss.IndexFlatL2(2))
        index.add_with_ids(np.eye(2, dtype=np.float32), np.array([1, 2], dtype=np.int64))
        predictor = SwipePredictor(
            VocabularyStore({1: ["sac"], 2: ["sec"]}),
            VectorIndex(index),
            OnnxSwipeEmbedder(FixedEmbeddingSession([1.0, 0.0])),
            get_layout("azerty"))

        path = get_layout("azerty").word_path("sac")
        line = make_line("sac", path[:, 0].tolist(), path[:, 1].tolist())
        records = [get_swipe_record_from_json_line(line)]

        all_preds = predict_records(predictor, records, top_k=2)
        self.assertEqual(all_preds, [["sac", "sec"]])

        with self.assertLogs("predict_swipes", level="INFO") as logs:
            log_metrics(records, all_preds)
        self.assertTrue(any("Accuracy: 1.0000" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
