from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Tuple
import os
import logging

from errors import LoadError


logger = logging.getLogger(__name__)


CONTEXT_WORDS = 4
END_OF_SENTENCE = "</s>"


@dataclass(frozen=True)
class LMState:
    """
    N-gram context after some words.

    `backend_state` is owned by the language model that produced it
    and is never modified: extending a state always creates a new one.
    `log_prob` is the log-probability accumulated since the begin state.
    """
    backend_state: Any
    log_prob: float = 0.0
    n_words: int = 0


class LanguageModelScorer(ABC):
    """
    Incremental language model scoring.

    Scoring many candidates after the same typed text is done by
    computing the context state once (`context_state`) and extending
    it by each candidate (`score_candidate`).
    """
    def __init__(self, context_words: int = CONTEXT_WORDS) -> None:
        self.context_words = context_words

    @abstractmethod
    def begin_state(self) -> LMState:
        pass

    @abstractmethod
    def extend(self, state: LMState, word: str) -> Tuple[float, LMState]:
        """
        Returns the log-probability of `word` after `state` and the state
        after `word`. The new state's `log_prob` includes the returned value.
        """
        pass

    @abstractmethod
    def end_score(self, state: LMState) -> float:
        """
        Log-probability of the end of sentence after `state`.
        """
        pass

    def extend_many(self, state: LMState, words: Iterable[str]) -> LMState:
        for word in words:
            if not word:
                continue
            _, state = self.extend(state, word)
        return state

    def score_sequence(self, words: Iterable[str]) -> float:
        """
        Log-probability of a whole sentence: starts from the begin state
        and includes the end of sentence.
        """
        state = self.extend_many(self.begin_state(), words)
        return state.log_prob + self.end_score(state)

    def context_state(self, words: Iterable[str]) -> LMState:
        """
        Replays the last `context_words` words of the typed text.

        If scoring fails midway the partial context is discarded:
        a warning is logged and the begin state is returned.
        """
        words = [word for word in words if word]
        if self.context_words > 0:
            words = words[-self.context_words:]
        else:
            words = []
        try:
            return self.extend_many(self.begin_state(), words)
        except Exception as e:
            logger.warning(f"Failed to compute language model context for {words}, "
                           f"falling back to the begin state: {e}")
            return self.begin_state()

    def score_candidate(self, context: LMState, word: str) -> float:
        """
        Log-probability of the context followed by `word` and the end of sentence.
        If scoring the candidate fails, only the context log-probability is returned.
        """
        try:
            _, state = self.extend(context, word)
            return state.log_prob + self.end_score(state)
        except Exception as e:
            logger.warning(f"Failed to score candidate '{word}' with the language model: {e}")
            return context.log_prob


class NullLanguageModel(LanguageModelScorer):
    """
    Language model used when none is available: every word is neutral.
    """
    def begin_state(self) -> LMState:
        return LMState(None)

    def extend(self, state: LMState, word: str) -> Tuple[float, LMState]:
        return 0.0, LMState(None, state.log_prob, state.n_words + 1)

    def end_score(self, state: LMState) -> float:
        return 0.0


class KenLMScorer(LanguageModelScorer):
    """
    KenLM n-gram model (ARPA or binary).

    Scores are log10 probabilities as returned by KenLM.
    Out of vocabulary words are scored as <unk> by the model.
    """
    def __init__(self, model, context_words: int = CONTEXT_WORDS) -> None:
        super().__init__(context_words)
        self.model = model
        self._kenlm = _import_kenlm()

    @classmethod
    def load(cls, model_path: str, context_words: int = CONTEXT_WORDS) -> "KenLMScorer":
        if not os.path.isfile(model_path):
            raise LoadError("language model", model_path, "file not found")
        try:
            kenlm = _import_kenlm()
        except ImportError as e:
            raise LoadError("language model", model_path, str(e)) from e
        try:
            model = kenlm.Model(model_path)
        except (OSError, RuntimeError) as e:
            raise LoadError("language model", model_path, str(e)) from e
        logger.info(f"Language model of order {model.order} loaded from {model_path}")
        return cls(model, context_words)

    @property
    def order(self) -> int:
        return self.model.order

    def __contains__(self, word: str) -> bool:
        return word in self.model

    def begin_state(self) -> LMState:
        state = self._kenlm.State()
        self.model.BeginSentenceWrite(state)
        return LMState(state)

    def extend(self, state: LMState, word: str) -> Tuple[float, LMState]:
        out_state = self._kenlm.State()
        log_prob = self.model.BaseScore(state.backend_state, word, out_state)
        return log_prob, LMState(out_state, state.log_prob + log_prob, state.n_words + 1)

    def end_score(self, state: LMState) -> float:
        out_state = self._kenlm.State()
        return self.model.BaseScore(state.backend_state, END_OF_SENTENCE, out_state)


def _import_kenlm():
    # kenlm is an optional compiled extension
    import kenlm
    return kenlm


def split_context(text: str, n: int = CONTEXT_WORDS) -> List[str]:
    """
    Returns the last `n` words of the typed text.
    """
    words = text.split()
    if n <= 0:
        return []
    return words[-n:]


def load_language_model(model_path: str,
                        context_words: int = CONTEXT_WORDS) -> LanguageModelScorer:
    """
    Returns a KenLM scorer, or a neutral one if the model is absent or
    can't be loaded. The language model is optional.
    """
    if not model_path or not os.path.isfile(model_path):
        logger.warning(f"Language model not found: {model_path}. "
                       "Candidates will get a neutral language model score")
        return NullLanguageModel(context_words)
    try:
        return KenLMScorer.load(model_path, context_words)
    except LoadError as e:
        logger.warning(f"{e}. Candidates will get a neutral language model score")
        return NullLanguageModel(context_words)
