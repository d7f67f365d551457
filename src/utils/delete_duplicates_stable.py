from typing import Hashable, Iterable, List


def delete_duplicates_stable(lst: Iterable[Hashable]) -> List[Hashable]:
    """
    Deletes duplicates from an iterable. The first occurrence of
    every element keeps its position.
    """
    seen = set()
    unique = []
    for el in lst:
        if el in seen:
            continue
        seen.add(el)
        unique.append(el)
    return unique
