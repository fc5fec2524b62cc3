"""Per-episode training summaries and report files."""

from __future__ import annotations

import csv
import html
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .constants import action_name
from .rewards import REWARD_TERMS


@dataclass
class EpisodeSummary:
    episode: int
    agent: str
    steps: int
    total_reward: float
    outcome: str
    phase: str
    term_totals: Dict[str, float]
    action_counts: Dict[str, int]
    performance: Optional[float] = None


@dataclass
class TrainingLogger:
    output_dir: str = "outputs"
    action_space_size: int = 12
    episode_summaries: List[EpisodeSummary] = field(default_factory=list)
    _episode: int = 0
    _agent: str = "player"
    _phase: str = ""
    _steps: int = 0
    _total: float = 0.0
    _terms: Dict[str, float] = field(default_factory=dict)
    _actions: Dict[str, int] = field(default_factory=dict)

    def start_episode(self, agent: str = "player", phase: str = "") -> None:
        self._episode += 1
        self._agent = agent
        self._phase = phase
        self._steps = 0
        self._total = 0.0
        self._terms = {name: 0.0 for name in REWARD_TERMS}
        self._actions = {}

    def log_step(
        self,
        action: int,
        reward: float,
        breakdown: Dict[str, float] | None = None,
    ) -> None:
        self._steps += 1
        self._total += float(reward)
        for term, value in (breakdown or {}).items():
            self._terms[term] = self._terms.get(term, 0.0) + float(value)
        name = action_name(int(action), self.action_space_size)
        self._actions[name] = self._actions.get(name, 0) + 1

    def end_episode(self, outcome: str, performance: float | None = None) -> EpisodeSummary:
        summary = EpisodeSummary(
            episode=self._episode,
            agent=self._agent,
            steps=self._steps,
            total_reward=self._total,
            outcome=outcome,
            phase=self._phase,
            term_totals=dict(self._terms),
            action_counts=dict(self._actions),
            performance=performance,
        )
        self.episode_summaries.append(summary)
        return summary

    def aggregate_metrics(self) -> Dict[str, object]:
        episodes = self.episode_summaries
        if not episodes:
            return {
                "episodes": 0,
                "mean_reward": 0.0,
                "mean_steps": 0.0,
                "outcome_histogram": {},
                "action_histogram": {},
                "term_totals": {},
            }

        outcomes: Dict[str, int] = {}
        actions: Dict[str, int] = {}
        terms: Dict[str, float] = {}
        for e in episodes:
            outcomes[e.outcome] = outcomes.get(e.outcome, 0) + 1
            for name, count in e.action_counts.items():
                actions[name] = actions.get(name, 0) + int(count)
            for name, value in e.term_totals.items():
                terms[name] = terms.get(name, 0.0) + value

        return {
            "episodes": len(episodes),
            "mean_reward": sum(e.total_reward for e in episodes) / len(episodes),
            "mean_steps": sum(e.steps for e in episodes) / len(episodes),
            "outcome_histogram": outcomes,
            "action_histogram": actions,
            "term_totals": terms,
        }

    def write_outputs(self) -> Dict[str, str]:
        out = Path(self.output_dir)
        out.mkdir(parents=True, exist_ok=True)

        jsonl_path = out / "episodes.jsonl"
        with jsonl_path.open("w", encoding="utf-8") as f:
            for e in self.episode_summaries:
                f.write(json.dumps(asdict(e)) + "\n")

        csv_path = out / "episodes.csv"
        terms = sorted({k for e in self.episode_summaries for k in e.term_totals})
        with csv_path.open("w", newline="", encoding="utf-8") as f:
            fieldnames = ["episode", "agent", "phase", "steps", "total_reward", "outcome"] + [
                f"term_{name}" for name in terms
            ]
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for e in self.episode_summaries:
                row: Dict[str, object] = {
                    "episode": e.episode,
                    "agent": e.agent,
                    "phase": e.phase,
                    "steps": e.steps,
                    "total_reward": round(e.total_reward, 5),
                    "outcome": e.outcome,
                }
                for name in terms:
                    row[f"term_{name}"] = round(e.term_totals.get(name, 0.0), 5)
                writer.writerow(row)

        html_path = out / "dashboard.html"
        html_path.write_text(build_dashboard_html(self.episode_summaries, self.aggregate_metrics()), encoding="utf-8")

        summary_path = out / "summary.json"
        summary_path.write_text(json.dumps(self.aggregate_metrics(), indent=2), encoding="utf-8")

        return {
            "jsonl": str(jsonl_path),
            "csv": str(csv_path),
            "html": str(html_path),
            "summary": str(summary_path),
        }


def build_dashboard_html(episodes: Iterable[EpisodeSummary], aggregate: Dict[str, object]) -> str:
    rows = "".join(
        f"<tr><td>{e.episode}</td><td>{html.escape(e.agent)}</td><td>{html.escape(e.phase)}</td>"
        f"<td>{e.steps}</td><td>{e.total_reward:.3f}</td><td>{html.escape(e.outcome)}</td></tr>"
        for e in episodes
    )
    outcomes = "".join(
        f"<div class=\"label\">{html.escape(str(k))}: {v}</div>"
        f"<div class=\"bar\" style=\"width:{20 + int(v) * 10}px\"></div>"
        for k, v in dict(aggregate.get("outcome_histogram", {})).items()
    )
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Arcade Training Dashboard</title>
  <style>
    body {{ font-family: -apple-system, Segoe UI, sans-serif; margin: 24px; background: #1b1f27; color: #eef1f8; }}
    .card {{ background: #272d39; border: 1px solid #47506a; border-radius: 8px; padding: 12px; margin-bottom: 14px; }}
    .metric {{ display: inline-block; margin-right: 16px; font-weight: 700; color: #f2c14e; }}
    .bar {{ height: 14px; border-radius: 4px; background: #39d0c3; margin-bottom: 6px; }}
    .label {{ color: #b7bfd3; }}
    table {{ border-collapse: collapse; width: 100%; }}
    th, td {{ border: 1px solid #47506a; padding: 4px 8px; font-size: 13px; text-align: left; }}
    pre {{ margin: 0; color: #e8deff; }}
  </style>
</head>
<body>
  <h1>Arcade Training Dashboard</h1>
  <div class="card">
    <div class="metric">Episodes: {aggregate['episodes']}</div>
    <div class="metric">Mean reward: {float(aggregate['mean_reward']):.3f}</div>
    <div class="metric">Mean steps: {float(aggregate['mean_steps']):.1f}</div>
  </div>
  <div class="card"><h3>Outcomes</h3>{outcomes}</div>
  <div class="card"><h3>Reward Terms</h3><pre>{html.escape(json.dumps(aggregate['term_totals'], indent=2))}</pre></div>
  <div class="card">
    <h3>Episodes</h3>
    <table>
      <thead><tr><th>Episode</th><th>Agent</th><th>Phase</th><th>Steps</th><th>Reward</th><th>Outcome</th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
  </div>
</body>
</html>"""
