"""Statistics over stored training episodes."""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .constants import action_name
from .experience import Episode

HIGH_CONFIDENCE = 0.7


def analyze_episodes(episodes: Sequence[Episode], action_space_size: int = 12) -> Dict[str, object]:
    """Reward, length, action and confidence statistics over `episodes`."""
    if not episodes:
        return {
            "total_episodes": 0,
            "total_experiences": 0,
            "avg_episode_length": 0.0,
            "avg_reward": 0.0,
            "max_reward": 0.0,
            "min_reward": 0.0,
            "reward_std": 0.0,
            "action_distribution": {},
            "confidence": {},
        }

    experiences = [exp for ep in episodes for exp in ep.experiences]
    rewards = np.asarray([ep.total_reward for ep in episodes], dtype=np.float64)

    actions: Dict[str, int] = {action_name(i, action_space_size): 0 for i in range(action_space_size)}
    for exp in experiences:
        name = action_name(exp.action, action_space_size)
        actions[name] = actions.get(name, 0) + 1

    confidence: Dict[str, float] = {}
    if experiences:
        conf = np.asarray([exp.confidence for exp in experiences], dtype=np.float64)
        confidence = {
            "avg": float(conf.mean()),
            "min": float(conf.min()),
            "max": float(conf.max()),
            "high_confidence_pct": float((conf >= HIGH_CONFIDENCE).mean() * 100.0),
        }

    return {
        "total_episodes": len(episodes),
        "total_experiences": len(experiences),
        "avg_episode_length": len(experiences) / len(episodes),
        "avg_reward": float(rewards.mean()),
        "max_reward": float(rewards.max()),
        "min_reward": float(rewards.min()),
        "reward_std": float(rewards.std()),
        "action_distribution": actions,
        "confidence": confidence,
    }


def learning_curve(episodes: Sequence[Episode], window: int = 10) -> List[Tuple[int, float]]:
    """Mean total reward per consecutive block of `window` episodes.

    Each point is keyed by the episode number that opens the block.
    """
    if window <= 0:
        raise ValueError("window must be positive")
    ordered = sorted(episodes, key=lambda e: e.episode_number)
    curve: List[Tuple[int, float]] = []
    for start in range(0, len(ordered), window):
        block = ordered[start : start + window]
        mean = sum(e.total_reward for e in block) / len(block)
        curve.append((block[0].episode_number, mean))
    return curve


def action_reward_analysis(episodes: Sequence[Episode], action_space_size: int = 12) -> Dict[str, float]:
    """Mean per-step reward observed after each action."""
    buckets: Dict[str, List[float]] = {
        action_name(i, action_space_size): [] for i in range(action_space_size)
    }
    for ep in episodes:
        for exp in ep.experiences:
            buckets.setdefault(action_name(exp.action, action_space_size), []).append(exp.reward)
    return {name: (sum(v) / len(v) if v else 0.0) for name, v in buckets.items()}


def write_report(
    episodes: Sequence[Episode],
    output_dir: str | Path,
    window: int = 10,
    action_space_size: int = 12,
) -> Dict[str, str]:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    report = {
        "analysis_date": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "stats": analyze_episodes(episodes, action_space_size),
        "action_rewards": action_reward_analysis(episodes, action_space_size),
    }
    report_path = out / "data_analysis_report.json"
    report_path.write_text(json.dumps(report, indent=2), encoding="utf-8")

    curve_path = out / "learning_curve.csv"
    with curve_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["episode", "avg_reward"])
        for episode, mean in learning_curve(episodes, window):
            writer.writerow([episode, round(mean, 5)])

    return {"report": str(report_path), "learning_curve": str(curve_path)}
