"""Prioritized experience replay buffer."""

from __future__ import annotations

import random
import threading
from typing import Dict, Iterable, List, Sequence, Tuple

from .experience import Experience

MIN_PRIORITY = 0.01


def initial_priority(experience: Experience) -> float:
    priority = abs(experience.reward) + 0.1
    if experience.done:
        priority *= 2.0
    if experience.reward > 1.0:
        priority *= 1.5
    return priority


class PrioritizedReplayBuffer:
    """Fixed-capacity ring buffer sampling experiences by priority.

    Once full, new experiences overwrite the oldest slot.
    """

    def __init__(self, capacity: int = 100_000, rng: random.Random | None = None) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = int(capacity)
        self._rng = rng or random.Random(0)
        self._items: List[Experience] = []
        self._priorities: List[float] = []
        self._next = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, experience: Experience) -> int:
        with self._lock:
            priority = initial_priority(experience)
            if len(self._items) < self.capacity:
                self._items.append(experience)
                self._priorities.append(priority)
                idx = len(self._items) - 1
            else:
                idx = self._next
                self._items[idx] = experience
                self._priorities[idx] = priority
            self._next = (idx + 1) % self.capacity
            return idx

    def extend(self, experiences: Iterable[Experience]) -> None:
        for experience in experiences:
            self.add(experience)

    def sample(self, batch_size: int) -> Tuple[List[int], List[Experience]]:
        """Draw `batch_size` indices with probability proportional to priority."""
        with self._lock:
            if not self._items:
                return [], []
            indices = self._rng.choices(
                range(len(self._items)), weights=self._priorities, k=int(batch_size)
            )
            return indices, [self._items[i] for i in indices]

    def sample_uniform(self, batch_size: int) -> Tuple[List[int], List[Experience]]:
        with self._lock:
            if not self._items:
                return [], []
            k = min(int(batch_size), len(self._items))
            indices = self._rng.sample(range(len(self._items)), k)
            return indices, [self._items[i] for i in indices]

    def update_priorities(self, indices: Sequence[int], td_errors: Sequence[float]) -> None:
        if len(indices) != len(td_errors):
            raise ValueError("indices and td_errors must have the same length")
        with self._lock:
            for idx, err in zip(indices, td_errors):
                if 0 <= idx < len(self._priorities):
                    self._priorities[idx] = max(MIN_PRIORITY, abs(float(err)) + MIN_PRIORITY)

    def priority(self, index: int) -> float:
        with self._lock:
            return self._priorities[index]

    def high_error_experiences(self, count: int = 10) -> List[Experience]:
        with self._lock:
            order = sorted(range(len(self._items)), key=lambda i: self._priorities[i], reverse=True)
            return [self._items[i] for i in order[: int(count)]]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._priorities.clear()
            self._next = 0

    def stats(self) -> Dict[str, float]:
        with self._lock:
            size = len(self._items)
            if size == 0:
                return {
                    "size": 0,
                    "capacity": self.capacity,
                    "average_priority": 0.0,
                    "max_priority": 0.0,
                    "min_priority": 0.0,
                    "terminal_fraction": 0.0,
                }
            terminal = sum(1 for e in self._items if e.done)
            return {
                "size": size,
                "capacity": self.capacity,
                "average_priority": sum(self._priorities) / size,
                "max_priority": max(self._priorities),
                "min_priority": min(self._priorities),
                "terminal_fraction": terminal / size,
            }
