"""Trainable agent roster: one entry per skill, each bound to a training range."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List

from arcaderl.featurize import LAYOUTS
from arcaderl.ranges import RANGE_KINDS, RangeSettings

from .policies import ModelConfig


@dataclass
class AgentSpec:
    name: str
    kind: str
    layout: str = "full"
    action_space_size: int = 9
    learning_rate: float = 0.001
    discount_factor: float = 0.99
    exploration_rate: float = 0.1
    settings: Dict[str, float] = field(default_factory=dict)

    def range_settings(self) -> RangeSettings:
        return RangeSettings(kind=self.kind, **self.settings)

    def model_config(self) -> ModelConfig:
        return ModelConfig(
            learning_rate=self.learning_rate,
            discount_factor=self.discount_factor,
            exploration_rate=self.exploration_rate,
            action_space_size=self.action_space_size,
            state_space_size=LAYOUTS[self.layout].dimension,
        )


DEFAULT_ROSTER = (
    AgentSpec("player_movement", "dodge", layout="base", action_space_size=9),
    AgentSpec("player_shooting", "shooting", layout="base", action_space_size=10),
    AgentSpec(
        "player_stealth_movement",
        "stealth",
        layout="full",
        action_space_size=12,
        settings={"max_steps": 400},
    ),
    AgentSpec("companion_movement", "escort", layout="full", action_space_size=12),
    AgentSpec(
        "companion_shooting",
        "shooting",
        layout="base",
        action_space_size=10,
        settings={"shot_cooldown": 8},
    ),
    AgentSpec(
        "companion_solo_movement",
        "dodge",
        layout="base",
        action_space_size=9,
        settings={"mover_speed": 4.0},
    ),
    AgentSpec("enemy_movement", "pursuit", layout="full", action_space_size=12),
    AgentSpec(
        "enemy_shooting",
        "shooting",
        layout="base",
        action_space_size=10,
        settings={"min_targets": 1, "max_targets": 3, "target_health": 1},
    ),
    AgentSpec("enemy_patrol", "patrol", layout="full", action_space_size=12),
    AgentSpec(
        "boss_movement",
        "dodge",
        layout="base",
        action_space_size=9,
        settings={"spawn_interval": 20, "projectile_speed": 6.0, "mover_speed": 4.0},
    ),
    AgentSpec(
        "boss_shooting",
        "shooting",
        layout="base",
        action_space_size=10,
        settings={"min_targets": 4, "max_targets": 6, "target_health": 5, "shot_cooldown": 3},
    ),
)


REQUIRED_AGENT_FIELDS = {"name", "kind", "layout", "action_space_size"}

OPTIONAL_AGENT_FIELDS = {
    "learning_rate": float,
    "discount_factor": float,
    "exploration_rate": float,
}

SETTINGS_FIELDS = {f.name for f in fields(RangeSettings)} - {"kind"}


def load_agent_roster(path: str | Path) -> List[AgentSpec]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Agent roster JSON must be an object")
    if "schema_version" not in raw or not isinstance(raw["schema_version"], int):
        raise ValueError("Agent roster JSON requires integer schema_version")
    if "agents" not in raw or not isinstance(raw["agents"], list):
        raise ValueError("Agent roster JSON requires array 'agents'")

    out: List[AgentSpec] = []
    seen = set()
    for idx, row in enumerate(raw["agents"]):
        if not isinstance(row, dict):
            raise ValueError(f"agents[{idx}] must be an object")
        missing = REQUIRED_AGENT_FIELDS - set(row.keys())
        if missing:
            miss = ", ".join(sorted(missing))
            raise ValueError(f"agents[{idx}] missing required field(s): {miss}")
        if row["kind"] not in RANGE_KINDS:
            raise ValueError(f"agents[{idx}].kind '{row['kind']}' is not a known range kind")
        if row["layout"] not in LAYOUTS:
            raise ValueError(f"agents[{idx}].layout '{row['layout']}' is not a known state layout")
        settings = row.get("settings", {})
        if not isinstance(settings, dict):
            raise ValueError(f"agents[{idx}].settings must be an object")
        unknown = set(settings.keys()) - SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"agents[{idx}].settings has unknown field(s): {', '.join(sorted(unknown))}")

        spec = AgentSpec(
            name=str(row["name"]),
            kind=str(row["kind"]),
            layout=str(row["layout"]),
            action_space_size=int(row["action_space_size"]),
            settings={k: (int(v) if isinstance(v, int) else float(v)) for k, v in settings.items()},
        )
        for key, caster in OPTIONAL_AGENT_FIELDS.items():
            if key in row:
                setattr(spec, key, caster(row[key]))
        if spec.name in seen:
            raise ValueError(f"agents[{idx}] duplicates agent name '{spec.name}'")
        seen.add(spec.name)
        out.append(spec)

    if not out:
        raise ValueError("At least one agent is required")
    return out


def roster_by_name(roster: List[AgentSpec] | tuple = DEFAULT_ROSTER) -> Dict[str, AgentSpec]:
    return {spec.name: spec for spec in roster}
