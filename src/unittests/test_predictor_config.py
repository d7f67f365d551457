import sys; import os; sys.path.insert(1, os.path.join(os.getcwd(), "src"))


import unittest
import tempfile
import json

from predictor_config import (
    DEFAULT_PREDICTOR_CONFIG,
    get_artifact_path,
    get_predictor_config,
)


class TestGetPredictorConfig(unittest.TestCase):

    def test_defaults(self):
        config = get_predictor_config()
        self.assertEqual(config, DEFAULT_PREDICTOR_CONFIG)
        self.assertEqual(config["max_swipe_len"], 520)
        self.assertEqual(config["pad_value"], -200.0)
        self.assertEqual(config["k_nearest"], 100)
        self.assertEqual(config["context_words"], 4)
        self.assertEqual(config["fallback_embedding_weight"], 0.5)
        self.assertIsNone(config["dtw_window"])

    def test_defaults_not_shared(self):
        config = get_predictor_config()
        config["top_k"] = 1
        self.assertEqual(DEFAULT_PREDICTOR_CONFIG["top_k"], 5)

    def test_file_and_overrides(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "predictor.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"k_nearest": 50, "layout": "qwerty"}, f)
            config = get_predictor_config(path, k_nearest=20)
        self.assertEqual(config["k_nearest"], 20)
        self.assertEqual(config["layout"], "qwerty")
        self.assertEqual(config["top_k"], 5)

    def test_shipped_config_is_valid(self):
        config_path = os.path.join(os.path.dirname(__file__), "..", "..", "configs", "predictor.json")
        if not os.path.exists(config_path):
            self.skipTest("configs/predictor.json is not available")
        config = get_predictor_config(config_path)
        self.assertEqual(config["swipe_encoder"], "swipe_encoder.onnx")

    def test_unknown_key(self):
        with self.assertRaises(ValueError):
            get_predictor_config(k_nearst=10)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            get_predictor_config(k_nearest=0)
        with self.assertRaises(ValueError):
            get_predictor_config(max_swipe_len=-1)


class TestGetArtifactPath(unittest.TestCase):

    def test_joined_with_assets_dir(self):
        config = get_predictor_config(assets_dir="/models")
        self.assertEqual(get_artifact_path(config, "vocabulary"),
                         os.path.join("/models", "vocab.msgpck"))

    def test_absolute_file_name(self):
        config = get_predictor_config(assets_dir="/models", ranker="/other/ranker.txt")
        self.assertEqual(get_artifact_path(config, "ranker"), "/other/ranker.txt")

    def test_disabled_artifact(self):
        config = get_predictor_config(language_model=None)
        self.assertIsNone(get_artifact_path(config, "language_model"))

    def test_unknown_artifact(self):
        with self.assertRaises(ValueError):
            get_artifact_path(get_predictor_config(), "tokenizer")


if __name__ == "__main__":
    unittest.main()
