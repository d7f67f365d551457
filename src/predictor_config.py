from typing import Optional
import copy
import json
import os


DEFAULT_PREDICTOR_CONFIG = {
    "assets_dir": "assets",
    "swipe_encoder": "swipe_encoder.onnx",
    "embedder_backend": "onnx",
    "vocabulary": "vocab.msgpck",
    "vector_index": "index.faiss",
    "index_metric": "auto",
    "language_model": "kenlm_model.arpa",
    "ranker": "lightgbm_ranker.txt",
    "layout": "azerty",
    "grid_name": None,
    "max_swipe_len": 520,
    "pad_value": -200.0,
    "k_nearest": 100,
    "dtw_window": None,
    "context_words": 4,
    "fallback_embedding_weight": 0.5,
    "top_k": 5,
}

ARTIFACT_KEYS = ("swipe_encoder", "vocabulary", "vector_index", "language_model", "ranker")


def read_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        obj = json.load(f)
    return obj


def get_predictor_config(config_path: Optional[str] = None, **overrides) -> dict:
    """
    Returns the default config updated with the values from `config_path`
    (a JSON object) and then with `overrides`.

    Raises:
    -------
    ValueError
        If the file or the overrides contain unknown keys.
    """
    config = copy.deepcopy(DEFAULT_PREDICTOR_CONFIG)
    updates = {}
    if config_path is not None:
        updates.update(read_json(config_path))
    updates.update(overrides)

    unknown = set(updates) - set(DEFAULT_PREDICTOR_CONFIG)
    if unknown:
        raise ValueError(f"Unknown predictor config keys: {sorted(unknown)}")
    config.update(updates)

    if config["k_nearest"] <= 0:
        raise ValueError(f"k_nearest must be positive, got {config['k_nearest']}")
    if config["max_swipe_len"] <= 0:
        raise ValueError(f"max_swipe_len must be positive, got {config['max_swipe_len']}")
    return config


def get_artifact_path(config: dict, artifact: str) -> Optional[str]:
    """
    Resolves an artifact file name against `assets_dir`.
    Absolute paths are returned as is, a null file name gives None.
    """
    if artifact not in ARTIFACT_KEYS:
        raise ValueError(f"Unknown artifact: {artifact}. Expected one of {ARTIFACT_KEYS}")
    file_name = config[artifact]
    if file_name is None:
        return None
    return os.path.join(config["assets_dir"], file_name)
