from typing import Callable, List, Optional, Sequence
import logging

from language_models import split_context
from swipe_predictor import PipelineState, SwipePredictor


logger = logging.getLogger(__name__)


class TextInputEngine:
    """
    Text typed so far plus swipe prediction in its context.

    The last words of the current text are the language model context
    of every swipe prediction. Callbacks are invoked synchronously.
    """
    def __init__(self, predictor: Optional[SwipePredictor] = None) -> None:
        self.predictor = predictor
        self.state = PipelineState.READY if predictor is not None else PipelineState.UNINITIALIZED
        self._current_text = ""
        self.word_history: List[str] = []

        self.on_text_changed: Optional[Callable[[str], None]] = None
        self.on_prediction_ready: Optional[Callable[[str], None]] = None
        self.on_top_k_predictions_ready: Optional[Callable[[List[str]], None]] = None

    def initialize(self, config: dict) -> None:
        """
        Loads the predictor.

        Raises:
        -------
        LoadError
            If a required artifact can't be loaded. The engine stays
            uninitialized in this case (and after any other failure).
        """
        logger.info(f"Initializing with assets path: {config['assets_dir']}")
        self.state = PipelineState.MODELS_LOADING
        try:
            self.predictor = SwipePredictor.from_config(config)
        except Exception:
            self.state = PipelineState.UNINITIALIZED
            raise
        self.state = PipelineState.READY
        logger.info("Initialization complete")

    def is_initialized(self) -> bool:
        return self.state is PipelineState.READY

    @property
    def current_text(self) -> str:
        return self._current_text

    def _notify_text_changed(self) -> None:
        if self.on_text_changed is not None:
            self.on_text_changed(self._current_text)

    def append_character(self, char: str) -> None:
        self.append_text(char)

    def append_text(self, text: str) -> None:
        """
        Appends typed text. Every word completed by a space
        is added to the word history.
        """
        n_completed = len(_completed_words(self._current_text))
        self._current_text += text
        self.word_history.extend(_completed_words(self._current_text)[n_completed:])
        self._notify_text_changed()

    def delete_last_character(self) -> None:
        if not self._current_text:
            return
        removed = self._current_text[-1]
        self._current_text = self._current_text[:-1]

        # The last word is no longer followed by a space
        if (removed == ' ' and self._current_text
                and not self._current_text.endswith(' ') and self.word_history):
            self.word_history.pop()

        self._notify_text_changed()

    def delete_last_word(self) -> None:
        """
        Deletes the word being typed or, if there is none,
        the last completed word with its trailing spaces.
        """
        stripped = self._current_text.rstrip(' ')
        is_completed = len(stripped) < len(self._current_text)

        last_space = stripped.rfind(' ')
        self._current_text = stripped[:last_space + 1]

        if is_completed and stripped and self.word_history:
            self.word_history.pop()

        self._notify_text_changed()

    def clear(self) -> None:
        self._current_text = ""
        self.word_history.clear()
        self._notify_text_changed()

    def context_words(self) -> List[str]:
        n = self.predictor.language_model.context_words if self.predictor else 4
        return split_context(self._current_text, n)

    def predict_top_k_from_swipe(self,
                                 swipe_path: Sequence[Sequence[float]],
                                 k: int = 5) -> List[str]:
        if not self.is_initialized():
            logger.warning("TextInputEngine not initialized")
            return []
        if len(swipe_path) == 0:
            logger.warning("Empty swipe path")
            return []

        predictions = self.predictor.predict_top_k(
            swipe_path, " ".join(self.context_words()), k)

        if self.on_top_k_predictions_ready is not None:
            self.on_top_k_predictions_ready(predictions)
        return predictions

    def predict_from_swipe(self, swipe_path: Sequence[Sequence[float]]) -> str:
        """
        Returns the predicted word or an empty string.
        """
        if not self.is_initialized():
            logger.warning("TextInputEngine not initialized")
            return ""
        if len(swipe_path) == 0:
            logger.warning("Empty swipe path")
            return ""

        prediction = self.predictor.predict(swipe_path, " ".join(self.context_words()))

        if self.on_prediction_ready is not None:
            self.on_prediction_ready(prediction)
        return prediction

    def evaluate_sequence(self, words: Sequence[str]) -> float:
        """
        Language model log-probability of `words` as a whole sentence.
        """
        if not self.is_initialized():
            logger.warning("TextInputEngine not initialized")
            return 0.0
        try:
            return self.predictor.language_model.score_sequence(words)
        except Exception as e:
            logger.error(f"Error evaluating sequence: {e}")
            return 0.0


def _completed_words(text: str) -> List[str]:
    """
    Words of `text` that are followed by a space.
    """
    words = text.split()
    if words and not text.endswith(' '):
        words.pop()
    return words
