from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from types import MappingProxyType
import json
import math
import logging

import numpy as np

from errors import LoadError


logger = logging.getLogger(__name__)


Coord = Tuple[float, float]


AZERTY_ROWS = (
    "&é\"'(-è_çà)=",
    "azertyuiop^$",
    "qsdfghjklmù*",
    "<wxcvbn,;:!",
)

QWERTY_ROWS = (
    "1234567890-=",
    "qwertyuiop[]",
    "asdfghjkl;'\\",
    "`zxcvbnm,./",
)

KEY_SIZE = 20.0
TOP_ROW_Y = 90.0
SPACE_BAR = (100.0, TOP_ROW_Y - KEY_SIZE * 4)


class KeyboardLayout:
    """
    Static character -> (x, y) table of a keyboard.

    Is used to derive the ideal path of a word: the sequence of key
    coordinates a perfect swipe over the word would visit.
    The table is never modified after construction so a single
    instance can be shared by all components and requests.
    """
    def __init__(self, name: str, char_to_coord: Mapping[str, Coord]) -> None:
        self.name = name
        self._char_to_coord = MappingProxyType(
            {char: (float(x), float(y)) for char, (x, y) in char_to_coord.items()})

    @property
    def char_to_coord(self) -> Mapping[str, Coord]:
        return self._char_to_coord

    def __contains__(self, char: str) -> bool:
        return char in self._char_to_coord

    def __len__(self) -> int:
        return len(self._char_to_coord)

    def coord(self, char: str) -> Optional[Coord]:
        return self._char_to_coord.get(char)

    def word_path(self, word: str) -> np.ndarray:
        """
        Returns the ideal path of `word` as an array of shape (m, 2).
        Characters absent on the keyboard are skipped, so `m <= len(word)`.
        """
        path = [self._char_to_coord[char] for char in word
                if char in self._char_to_coord]
        if not path:
            return np.empty((0, 2), dtype=np.float64)
        return np.asarray(path, dtype=np.float64)

    @classmethod
    def from_rows(cls,
                  name: str,
                  rows: Sequence[str],
                  key_size: float = KEY_SIZE,
                  top_y: float = TOP_ROW_Y,
                  space: Optional[Coord] = SPACE_BAR) -> "KeyboardLayout":
        """
        Builds a staggered layout from rows of characters.

        Row `i` is shifted right by `fmod(0.5 * i, 1.5)` keys
        and lies `key_size` lower than the previous one.
        """
        char_to_coord = {}
        for row_idx, row in enumerate(rows):
            for i, char in enumerate(row):
                x = (i + math.fmod(0.5 * row_idx, 1.5)) * key_size
                y = top_y - key_size * row_idx
                char_to_coord[char] = (x, y)
        if space is not None:
            char_to_coord[' '] = space
        return cls(name, char_to_coord)

    @classmethod
    def from_grid(cls, name: str, grid: dict) -> "KeyboardLayout":
        """
        Builds a layout from a keyboard grid: a dict with a `keys` list
        where each key has a `label` (or an `action`) and a `hitbox`
        with `x`, `y`, `w`, `h` properties. Action keys are ignored.
        """
        char_to_coord = {}
        for key in grid['keys']:
            if 'label' not in key:
                continue
            char_to_coord[key['label']] = get_kb_key_center(key['hitbox'])
        if not char_to_coord:
            raise ValueError(f"Grid '{name}' has no labeled keys")
        return cls(name, char_to_coord)


def get_kb_key_center(hitbox: Dict[str, int]) -> Coord:
    x = hitbox['x'] + hitbox['w'] / 2
    y = hitbox['y'] + hitbox['h'] / 2
    return x, y


def get_grid(grid_name: str, grids_path: str) -> dict:
    with open(grids_path, "r", encoding="utf-8") as f:
        return json.load(f)[grid_name]


_BUILTIN_ROWS = {
    "azerty": AZERTY_ROWS,
    "qwerty": QWERTY_ROWS,
}

_layout_cache: Dict[str, KeyboardLayout] = {}


def available_layouts() -> List[str]:
    return sorted(_BUILTIN_ROWS)


def get_layout(name: str) -> KeyboardLayout:
    """
    Returns a built-in layout. The table is built on first use
    and the same instance is returned afterwards.
    """
    if name not in _BUILTIN_ROWS:
        raise ValueError(f"Unknown keyboard layout: {name}. "
                         f"Available: {available_layouts()}")
    layout = _layout_cache.get(name)
    if layout is None:
        layout = KeyboardLayout.from_rows(name, _BUILTIN_ROWS[name])
        _layout_cache[name] = layout
    return layout


def load_layout(layout: str, grid_name: Optional[str] = None) -> KeyboardLayout:
    """
    Arguments:
    ----------
    layout: str
        Either a built-in layout name or a path to a JSON file
        mapping grid names to keyboard grids.
    grid_name: Optional[str]
        Grid to take from the JSON file. Required when `layout` is a path.

    Raises:
    -------
    LoadError
        If the grid file can't be read or has no usable grid `grid_name`.
    """
    if layout in _BUILTIN_ROWS:
        return get_layout(layout)
    if grid_name is None:
        raise LoadError("keyboard layout", layout,
                        f"not a built-in layout {available_layouts()} "
                        "and no grid_name is given")
    try:
        grid = get_grid(grid_name, layout)
    except OSError as e:
        raise LoadError("keyboard layout", layout, str(e)) from e
    except ValueError as e:
        raise LoadError("keyboard layout", layout, f"can't deserialize: {e}") from e
    except (KeyError, TypeError):
        raise LoadError("keyboard layout", layout, f"no grid named '{grid_name}'") from None
    try:
        keyboard = KeyboardLayout.from_grid(grid_name, grid)
    except (KeyError, TypeError, ValueError) as e:
        raise LoadError("keyboard layout", layout, f"malformed grid '{grid_name}': {e}") from e
    logger.info(f"Keyboard layout '{grid_name}' loaded from {layout} "
                f"with {len(keyboard)} keys")
    return keyboard


def path_from_points(points: Iterable[Sequence[float]]) -> np.ndarray:
    """
    Converts a swipe path given as (x, y) pairs into an array of shape (n, 2).
    """
    arr = np.asarray(list(points), dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected a sequence of (x, y) points, got shape {arr.shape}")
    return arr
