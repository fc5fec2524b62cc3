"""Best-model bookkeeping on top of value snapshots."""

from __future__ import annotations

import json
import logging
import random
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .policies import ModelConfig, ValueApproximator

logger = logging.getLogger(__name__)

IMPROVEMENT_RATIO = 0.05


def is_improvement(candidate: float, current: Optional[float]) -> bool:
    if current is None:
        return True
    return candidate > current and candidate >= current + abs(current) * IMPROVEMENT_RATIO


class ModelCheckpoints:
    """Keeps `<name>_model.json` as the best snapshot seen so far per agent."""

    def __init__(self, model_dir: str | Path = "models") -> None:
        self.model_dir = Path(model_dir)

    def model_path(self, name: str) -> Path:
        return self.model_dir / f"{name}_model.json"

    def backup_path(self, name: str) -> Path:
        return self.model_dir / f"{name}_model_backup.json"

    def stored_performance(self, name: str) -> Optional[float]:
        path = self.model_path(name)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return float(payload["metrics"]["performance_score"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Stored model %s is unreadable, treating as absent: %s", path, exc)
            return None

    def save_best_model(
        self,
        model: ValueApproximator,
        name: str,
        performance: Optional[float] = None,
    ) -> bool:
        """Save when nothing is stored yet or `performance` beats it by 5%.

        The replaced snapshot is copied to `<name>_model_backup.json` first.
        """
        score = float(model.metrics.performance_score if performance is None else performance)
        current = self.stored_performance(name)
        if not is_improvement(score, current):
            logger.info(
                "Keeping stored %s model (%.4f); candidate %.4f is not a 5%% improvement",
                name,
                current,
                score,
            )
            return False

        path = self.model_path(name)
        model.metrics.performance_score = score
        try:
            if path.exists():
                shutil.copyfile(path, self.backup_path(name))
            model.save(path)
        except OSError as exc:
            logger.warning("Could not save best %s model: %s", name, exc)
            return False
        logger.info("Saved best %s model with performance %.4f", name, score)
        return True

    def load_best_model(
        self,
        name: str,
        config: ModelConfig | None = None,
        rng: random.Random | None = None,
    ) -> ValueApproximator:
        return ValueApproximator.load(self.model_path(name), config=config, rng=rng)

    def list_models(self) -> List[Dict[str, object]]:
        if not self.model_dir.exists():
            return []
        out: List[Dict[str, object]] = []
        for path in sorted(self.model_dir.glob("*_model.json")):
            name = path.name[: -len("_model.json")]
            out.append(
                {
                    "name": name,
                    "path": str(path),
                    "performance": self.stored_performance(name),
                    "has_backup": self.backup_path(name).exists(),
                }
            )
        return out
