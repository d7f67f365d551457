"""
Predicts words for a JSONL dataset of swipes.

Each line of the dataset is an object with a `curve` (`x`, `y`, `t`,
`grid_name`) and optionally the reference `word` and a `context` string
(the text typed before the swipe). Writes one JSON object per swipe:
{"word": ..., "predictions": [...]}.
"""

from typing import Iterator, List, NamedTuple, Optional
import argparse
import json
import logging

from tqdm import tqdm

from predictor_config import get_predictor_config
from swipe_predictor import SwipePredictor
from metrics import get_accuracy, get_mmr


logger = logging.getLogger(__name__)


class SwipeRecord(NamedTuple):
    points: List[List[float]]
    grid_name: Optional[str]
    word: Optional[str]
    context: str


def get_swipe_record_from_json_line(line: str) -> SwipeRecord:
    data = json.loads(line)
    curve = data['curve']
    if len(curve['x']) != len(curve['y']):
        raise ValueError(f"Curve has {len(curve['x'])} x and {len(curve['y'])} y coordinates")
    points = [[float(x), float(y)] for x, y in zip(curve['x'], curve['y'])]
    return SwipeRecord(points, curve.get('grid_name'),
                       data.get('word'), data.get('context', ""))


def read_swipe_records(data_path: str) -> Iterator[SwipeRecord]:
    with open(data_path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                yield get_swipe_record_from_json_line(line)


def predict_records(predictor: SwipePredictor,
                    records: List[SwipeRecord],
                    top_k: int) -> List[List[str]]:
    return [predictor.predict_top_k(record.points, record.context, top_k)
            for record in tqdm(records, desc="Predicting")]


def log_metrics(records: List[SwipeRecord], all_preds: List[List[str]]) -> None:
    pairs = [(record.word, preds) for record, preds in zip(records, all_preds)
             if record.word is not None]
    if not pairs:
        logger.info("No reference words in the dataset, skipping metrics")
        return
    ref = [word for word, _ in pairs]
    preds_list = [preds for _, preds in pairs]
    top1 = [preds[0] if preds else "" for preds in preds_list]
    logger.info(f"Accuracy: {get_accuracy(top1, ref):.4f}")
    logger.info(f"MMR: {get_mmr(preds_list, ref):.4f}")


def setup_logging(log_file: Optional[str] = None) -> None:
    if log_file is not None:
        handlers = [logging.StreamHandler(), logging.FileHandler(log_file, mode='w')]
    else:
        handlers = None
    logging.basicConfig(level=logging.INFO, format='%(funcName)-20s   : %(message)s', handlers=handlers)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Predict words for a dataset of swipes")
    parser.add_argument('--config', type=str, default=None,
                        help="Predictor config JSON. Defaults are used for missing keys")
    parser.add_argument('--data_path', type=str, required=True)
    parser.add_argument('--output', type=str, required=True)
    parser.add_argument('--top_k', type=int, default=None)
    parser.add_argument('--assets_dir', type=str, default=None)
    parser.add_argument('--log_file', type=str, default=None)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging(args.log_file)

    overrides = {}
    if args.assets_dir is not None:
        overrides['assets_dir'] = args.assets_dir
    config = get_predictor_config(args.config, **overrides)
    top_k = args.top_k if args.top_k is not None else config['top_k']

    predictor = SwipePredictor.from_config(config)
    if predictor.uses_fallback_ranker:
        logger.info("Ranking model unavailable, predictions use fallback scoring")

    records = list(read_swipe_records(args.data_path))
    logger.info(f"Loaded {len(records)} swipes from {args.data_path}")

    all_preds = predict_records(predictor, records, top_k)

    with open(args.output, "w", encoding="utf-8") as f:
        for record, preds in zip(records, all_preds):
            f.write(json.dumps({"word": record.word, "predictions": preds},
                               ensure_ascii=False) + "\n")
    logger.info(f"Predictions saved to {args.output}")

    log_metrics(records, all_preds)


if __name__ == '__main__':
    main()
