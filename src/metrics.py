from typing import List, Sequence
from warnings import warn

from utils.delete_duplicates_stable import delete_duplicates_stable


MMR_WEIGHTS = (1, 0.1, 0.09, 0.08)


def get_mmr(preds_list: Sequence[Sequence[str]], ref: Sequence[str]) -> float:
    """
    Weighted reciprocal rank of the reference word among the first
    four unique predictions, averaged over swipes.
    """
    if len(preds_list) != len(ref):
        warn("Prediction and target lengths not equal: " \
             f"`len(preds_list)` = {len(preds_list)}, `len(ref)` = {len(ref)}")
    if len(ref) == 0:
        return 0.0

    mmr = 0
    for preds, target in zip(preds_list, ref):
        preds = delete_duplicates_stable(preds)
        mmr += sum(weight * (pred == target)
                   for weight, pred in zip(MMR_WEIGHTS, preds))

    return mmr / len(ref)


def get_accuracy(preds_list: List[str], ref: List[str]) -> float:
    """
    Share of swipes whose best prediction equals the reference word.
    """
    if len(preds_list) == 0:
        return 0.0
    n_equal = sum(int(pred == target) for pred, target in zip(preds_list, ref))
    return n_equal / len(preds_list)
