"""
Selection Set - Ids the user picked for a bulk operation
"""

from typing import Dict, Iterable, Iterator, List


class SelectionSet:
    """Insertion-ordered set of email ids, client side only"""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: Dict[str, None] = dict.fromkeys(ids)

    def __contains__(self, email_id: object) -> bool:
        return email_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __bool__(self) -> bool:
        return bool(self._ids)

    def __repr__(self) -> str:
        return f"SelectionSet({list(self._ids)!r})"

    def ids(self) -> List[str]:
        return list(self._ids)

    def toggle(self, email_id: str) -> bool:
        """Flip one id, returns True when it ends up selected"""
        if email_id in self._ids:
            del self._ids[email_id]
            return False
        self._ids[email_id] = None
        return True

    def select_all(self, ids: Iterable[str]) -> None:
        self._ids = dict.fromkeys(ids)

    def clear(self) -> None:
        self._ids = {}

    def toggle_all(self, ids: Iterable[str]) -> None:
        """Select everything rendered, or nothing if everything already is"""
        ids = list(ids)
        if ids and len(self._ids) == len(ids) and all(i in self._ids for i in ids):
            self.clear()
        else:
            self.select_all(ids)

    def discard(self, ids: Iterable[str]) -> None:
        for email_id in ids:
            self._ids.pop(email_id, None)

    def retain(self, ids: Iterable[str]) -> None:
        """Drop ids that are no longer rendered"""
        keep = set(ids)
        self._ids = {i: None for i in self._ids if i in keep}
