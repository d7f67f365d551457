"""
Swipe path -> embedding.

The embedding model is a pre-trained sequence encoder exported either
to ONNX or to TorchScript. It takes three aligned inputs:

* input:     float32 (1, L, 2)  swipe point coordinates
* positions: int64   (1, L)     position of each point in the sequence
* mask:      bool    (1, L)     True where the point is padding

and returns a single float32 (1, D) embedding. L is fixed at export time.
"""

from typing import NamedTuple, Optional, Protocol, Sequence
import os
import logging

import numpy as np
import torch
import onnxruntime as ort

from errors import EncodeError, EmptyPathError, LoadError


logger = logging.getLogger(__name__)


MAX_SWIPE_LEN = 520
PAD_VALUE = -200.0

INPUT_NAMES = ("input", "positions", "mask")
OUTPUT_NAME = "output"


class SwipeInputs(NamedTuple):
    points: np.ndarray     # float32 (1, L, 2)
    positions: np.ndarray  # int64 (1, L)
    mask: np.ndarray       # bool (1, L), True = padding


def prepare_swipe_inputs(path: Sequence[Sequence[float]],
                         max_len: int = MAX_SWIPE_LEN,
                         pad_value: float = PAD_VALUE) -> SwipeInputs:
    """
    Brings a swipe path to the fixed model input length.

    Short paths are padded with `pad_value` and the padded positions
    are marked in the mask. Long paths keep only their last `max_len`
    points (the most recent part of the gesture) and the mask is all False.

    Raises:
    -------
    EmptyPathError
        If the path has no points.
    EncodeError
        If the points are not (x, y) pairs.
    """
    if len(path) == 0:
        raise EmptyPathError()

    try:
        points = np.asarray(path, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"Swipe path is not a sequence of (x, y) points: {e}") from e
    if points.ndim != 2 or points.shape[1] != 2:
        raise EncodeError(f"Expected swipe path of shape (n, 2), got {points.shape}")

    n_points = len(points)
    if n_points >= max_len:
        points = points[-max_len:]
        mask = np.zeros(max_len, dtype=bool)
    else:
        padding = np.full((max_len - n_points, 2), pad_value, dtype=np.float32)
        points = np.concatenate([points, padding], axis=0)
        mask = np.arange(max_len) >= n_points

    positions = np.arange(max_len, dtype=np.int64)

    return SwipeInputs(points[np.newaxis], positions[np.newaxis], mask[np.newaxis])


class SwipeEmbedder(Protocol):
    def encode(self, path: Sequence[Sequence[float]]) -> np.ndarray:
        """
        Returns a 1-D float32 embedding of the swipe path.
        """
        ...


class OnnxSwipeEmbedder:
    def __init__(self,
                 session: ort.InferenceSession,
                 max_len: int = MAX_SWIPE_LEN,
                 pad_value: float = PAD_VALUE) -> None:
        self.session = session
        self.max_len = max_len
        self.pad_value = pad_value

    @classmethod
    def load(cls, model_path: str,
             max_len: int = MAX_SWIPE_LEN,
             pad_value: float = PAD_VALUE) -> "OnnxSwipeEmbedder":
        if not os.path.isfile(model_path):
            raise LoadError("swipe encoder", model_path, "file not found")
        sess_options = ort.SessionOptions()
        sess_options.log_severity_level = 3
        sess_options.enable_cpu_mem_arena = False
        try:
            session = ort.InferenceSession(
                model_path, sess_options, providers=["CPUExecutionProvider"])
        except Exception as e:  # onnxruntime raises its own non-public exception types
            raise LoadError("swipe encoder", model_path, str(e)) from e

        input_names = {inp.name for inp in session.get_inputs()}
        missing = set(INPUT_NAMES) - input_names
        if missing:
            raise LoadError("swipe encoder", model_path,
                            f"model has no inputs {sorted(missing)}")
        logger.info(f"Swipe encoder loaded from {model_path}")
        return cls(session, max_len, pad_value)

    def encode(self, path: Sequence[Sequence[float]]) -> np.ndarray:
        inputs = prepare_swipe_inputs(path, self.max_len, self.pad_value)
        feed = dict(zip(INPUT_NAMES, inputs))
        try:
            output, = self.session.run([OUTPUT_NAME], feed)
        except Exception as e:
            raise EncodeError(f"Swipe encoder inference failed: {e}") from e
        return np.asarray(output, dtype=np.float32).reshape(-1)


class TorchScriptSwipeEmbedder:
    def __init__(self,
                 module: torch.nn.Module,
                 max_len: int = MAX_SWIPE_LEN,
                 pad_value: float = PAD_VALUE,
                 device: Optional[torch.device] = None) -> None:
        self.device = device or torch.device("cpu")
        self.module = module.to(self.device).eval()
        self.max_len = max_len
        self.pad_value = pad_value

    @classmethod
    def load(cls, model_path: str,
             max_len: int = MAX_SWIPE_LEN,
             pad_value: float = PAD_VALUE,
             device: Optional[torch.device] = None) -> "TorchScriptSwipeEmbedder":
        if not os.path.isfile(model_path):
            raise LoadError("swipe encoder", model_path, "file not found")
        try:
            module = torch.jit.load(model_path, map_location=device or "cpu")
        except RuntimeError as e:
            raise LoadError("swipe encoder", model_path, str(e)) from e
        logger.info(f"Swipe encoder loaded from {model_path}")
        return cls(module, max_len, pad_value, device)

    def encode(self, path: Sequence[Sequence[float]]) -> np.ndarray:
        points, positions, mask = prepare_swipe_inputs(path, self.max_len, self.pad_value)
        points, positions, mask = map(
            lambda arr: torch.from_numpy(arr).to(self.device),
            (points, positions, mask))
        try:
            with torch.no_grad():
                output = self.module(points, positions, mask)
        except RuntimeError as e:
            raise EncodeError(f"Swipe encoder inference failed: {e}") from e
        return output.detach().cpu().numpy().astype(np.float32).reshape(-1)


EMBEDDER_BACKENDS = {
    "onnx": OnnxSwipeEmbedder,
    "torchscript": TorchScriptSwipeEmbedder,
}


def load_swipe_embedder(model_path: str,
                        backend: str = "onnx",
                        max_len: int = MAX_SWIPE_LEN,
                        pad_value: float = PAD_VALUE) -> SwipeEmbedder:
    if backend not in EMBEDDER_BACKENDS:
        raise LoadError("swipe encoder", model_path,
                        f"unknown backend '{backend}', "
                        f"available: {sorted(EMBEDDER_BACKENDS)}")
    return EMBEDDER_BACKENDS[backend].load(model_path, max_len, pad_value)
