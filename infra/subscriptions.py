# infra/subscriptions.py
from typing import Dict, Iterable, Iterator, List

from tradesmart.models import SubscriptionKey


class SubscriptionRegistry:
    """
    Durable subscription intent for one feed connection: a deduplicated set of
    EXCH|TOKEN keys that survives reconnects and is replayed in full after each one.
    Only explicit add/remove calls change it.
    """

    def __init__(self) -> None:
        # dict keeps first-insertion order so replayed frames are stable
        self._keys: Dict[str, SubscriptionKey] = {}

    def add(self, keys: Iterable[SubscriptionKey]) -> List[SubscriptionKey]:
        """Union keys into the registry; returns only the ones that were new."""
        added = []
        for k in keys:
            wire = str(k)
            if wire not in self._keys:
                self._keys[wire] = k
                added.append(k)
        return added

    def remove(self, keys: Iterable[SubscriptionKey]) -> List[SubscriptionKey]:
        """Drop keys; returns the ones that were actually registered."""
        removed = []
        for k in keys:
            if self._keys.pop(str(k), None) is not None:
                removed.append(k)
        return removed

    def keys(self) -> List[SubscriptionKey]:
        return list(self._keys.values())

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: object) -> bool:
        return str(key) in self._keys

    def __iter__(self) -> Iterator[SubscriptionKey]:
        return iter(list(self._keys.values()))

    def __len__(self) -> int:
        return len(self._keys)
