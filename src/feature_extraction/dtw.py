from typing import NamedTuple, Optional

import numpy as np


INF = float('inf')


def dtw_multivariate(a: np.ndarray, b: np.ndarray,
                     window: Optional[int] = None) -> float:
    """
    Dynamic time warping distance between two 2-D point sequences.

    Arguments:
    ----------
    a: np.ndarray
        Sequence of shape (n, 2).
    b: np.ndarray
        Sequence of shape (m, 2).
    window: Optional[int]
        Sakoe-Chiba band half width: a[i] may only be aligned with b[j]
        for |i - j| <= window. None means unbounded (max(n, m)).
        The window is widened to |n - m| if it is narrower,
        otherwise no alignment reaches the end of both sequences.

    Returns:
    --------
    float
        Sum of euclidean distances along the cheapest alignment.
        0.0 if any of the sequences is empty.

    Example:
    --------
    cost[i][j] = |a[i-1] - b[j-1]| + min(cost[i-1][j], cost[i][j-1], cost[i-1][j-1])
    Only two rows of `cost` are kept: O(m) memory, O(n * window) time.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1, 2)
    b = np.asarray(b, dtype=np.float64).reshape(-1, 2)
    n, m = len(a), len(b)

    if n == 0 or m == 0:
        return 0.0

    if window is None or window < 0:
        window = max(n, m)
    window = max(window, abs(n - m))

    prev_row = [INF] * (m + 1)
    curr_row = [INF] * (m + 1)
    prev_row[0] = 0.0

    for i in range(1, n + 1):
        curr_row[0] = INF
        j_start = max(1, i - window)
        j_end = min(m, i + window)

        # Cells outside the band must not leak values from two rows ago
        if j_start > 1:
            curr_row[j_start - 1] = INF
        if j_end < m:
            curr_row[j_end + 1] = INF

        costs = np.sqrt(((b[j_start - 1:j_end] - a[i - 1]) ** 2).sum(axis=1)).tolist()

        for j, cost in zip(range(j_start, j_end + 1), costs):
            curr_row[j] = cost + min(prev_row[j], curr_row[j - 1], prev_row[j - 1])

        prev_row, curr_row = curr_row, prev_row

    return prev_row[m]


class DTWDistances(NamedTuple):
    raw: float
    by_max: float
    by_min: float
    by_sum: float
    len_swipe: int
    len_word: int


def compute_dtw_distances(swipe_path: np.ndarray,
                          word_path: np.ndarray,
                          window: Optional[int] = None) -> DTWDistances:
    """
    Computes the DTW distance between a swipe and a word's ideal path
    together with its three length normalizations. A normalization
    whose denominator is 0 is 0.
    """
    len_swipe, len_word = len(swipe_path), len(word_path)
    raw = dtw_multivariate(swipe_path, word_path, window)

    max_len = max(len_swipe, len_word)
    min_len = min(len_swipe, len_word)
    sum_len = len_swipe + len_word

    return DTWDistances(
        raw=raw,
        by_max=raw / max_len if max_len > 0 else 0.0,
        by_min=raw / min_len if min_len > 0 else 0.0,
        by_sum=raw / sum_len if sum_len > 0 else 0.0,
        len_swipe=len_swipe,
        len_word=len_word,
    )
