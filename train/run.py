"""CLI entrypoint for training in-repo."""

from __future__ import annotations

import argparse
import json
import logging
import threading
from datetime import datetime
from pathlib import Path

from arcaderl.analysis import analyze_episodes, write_report
from arcaderl.curriculum import DEFAULT_PHASES, load_curriculum_phases
from arcaderl.experience import ExperienceStore
from arcaderl.featurize import LAYOUTS
from arcaderl.rewards import RewardWeights, load_reward_weights

from .aim_logger import AimLogger
from .checkpoints import ModelCheckpoints
from .orchestrator import MultiAgentCyclicOrchestrator
from .parallel import ParallelConfig, ParallelTrainingCoordinator
from .policies import load_model_config
from .roster import DEFAULT_ROSTER, load_agent_roster
from .trainer import OfflineTrainer, TrainConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train arcade agents")
    p.add_argument("--log-level", type=str, default="INFO")
    p.add_argument("--seed", type=int, default=0)
    p.add_argument("--output-dir", type=str, default="outputs/train")
    p.add_argument("--no-aim", action="store_true", help="Disable Aim metric logging.")
    p.add_argument("--aim-experiment", type=str, default="arcaderl", help="Aim experiment name.")
    p.add_argument("--aim-repo-path", type=str, default=".aim")
    sub = p.add_subparsers(dest="command", required=True)

    par = sub.add_parser("parallel", help="Train K simulated environments concurrently")
    par.add_argument("--episodes", type=int, default=1000)
    par.add_argument("--environments", type=int, default=4)
    par.add_argument("--max-concurrency", type=int, default=4)
    par.add_argument("--max-steps", type=int, default=1000)
    par.add_argument("--layout", choices=sorted(LAYOUTS), default="full")
    par.add_argument("--data-dir", type=str, default="training_data")
    par.add_argument("--model-dir", type=str, default="models")
    par.add_argument("--model-name", type=str, default="player")
    par.add_argument("--persist-episodes", action="store_true")
    par.add_argument("--progress-every", type=int, default=100)
    par.add_argument("--curriculum-path", type=str, default="data/curriculum_phases.json")
    par.add_argument("--reward-weights-path", type=str, default="data/reward_weights.json")
    par.add_argument("--model-config-path", type=str, default="data/model_config.json")
    par.add_argument("--duration-minutes", type=float, default=None)

    cyc = sub.add_parser("cyclic", help="Train the agent roster one agent at a time")
    cyc.add_argument("--episodes-per-cycle", type=int, default=100)
    cyc.add_argument("--max-cycles", type=int, default=None)
    cyc.add_argument("--model-dir", type=str, default="models")
    cyc.add_argument("--roster-path", type=str, default="data/agent_roster.json")
    cyc.add_argument("--duration-minutes", type=float, default=None)

    off = sub.add_parser("offline", help="Train a model from persisted episodes")
    off.add_argument("--data-dir", type=str, default="training_data")
    off.add_argument("--model-dir", type=str, default="models")
    off.add_argument("--model-name", type=str, default="player")
    off.add_argument("--model-config-path", type=str, default="")
    off.add_argument("--layout", choices=sorted(LAYOUTS), default="full")
    off.add_argument("--epochs", type=int, default=10)
    off.add_argument("--batch-size", type=int, default=32)
    off.add_argument("--eval-episodes", type=int, default=5)
    off.add_argument("--eval-phase", type=int, default=0)
    off.add_argument(
        "--uniform",
        action="store_true",
        help="Sample replay batches uniformly instead of by priority.",
    )

    ana = sub.add_parser("analyze", help="Summarize persisted episodes")
    ana.add_argument("--data-dir", type=str, default="training_data")
    ana.add_argument("--window", type=int, default=10)
    ana.add_argument("--action-space-size", type=int, default=12)
    return p


def _timestamped_output_dir(raw_output_dir: str) -> str:
    ts = datetime.now().strftime("%Y%m%d-%H%M")
    out = Path(raw_output_dir)
    parts = out.parts
    if parts and parts[0] == "outputs":
        remainder = list(parts[1:])
        if remainder and remainder[0] == "train":
            remainder = remainder[1:]
        suffix = Path(*remainder) if remainder else Path()
        return str(Path("outputs") / ts / suffix)
    return str(out / ts)


def _session_timer(minutes: float | None, cancel: threading.Event) -> threading.Timer | None:
    if minutes is None:
        return None
    timer = threading.Timer(max(0.0, float(minutes)) * 60.0, cancel.set)
    timer.daemon = True
    timer.start()
    logger.info("Session limited to %.1f minutes", minutes)
    return timer


def _optional(path: str) -> Path | None:
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        logger.info("Config %s not found, using built-in defaults", p)
        return None
    return p


def run_parallel(args, output_dir: str) -> dict:
    phases = DEFAULT_PHASES
    curriculum = _optional(args.curriculum_path)
    if curriculum is not None:
        phases = load_curriculum_phases(curriculum)
    weights_path = _optional(args.reward_weights_path)
    weights = load_reward_weights(weights_path) if weights_path is not None else RewardWeights()
    model_path = _optional(args.model_config_path)
    model_config = load_model_config(model_path) if model_path is not None else None

    config = ParallelConfig(
        environments=args.environments,
        max_concurrency=args.max_concurrency,
        max_steps=args.max_steps,
        seed=args.seed,
        layout=args.layout,
        persist_episodes=bool(args.persist_episodes),
        progress_every=args.progress_every,
        output_dir=output_dir,
        show_progress=True,
        aim_enabled=not bool(args.no_aim),
        aim_experiment=args.aim_experiment,
        aim_repo_path=args.aim_repo_path,
    )
    store = ExperienceStore(args.data_dir, state_dim=LAYOUTS[args.layout].dimension)
    coordinator = ParallelTrainingCoordinator(
        config, store=store, model_config=model_config, phases=phases, weights=weights
    )
    cancel = threading.Event()
    timer = _session_timer(args.duration_minutes, cancel)
    try:
        results = coordinator.run(args.episodes, cancel)
    finally:
        if timer is not None:
            timer.cancel()
        store.close()
        coordinator.close()
    best = coordinator.best_model()
    ModelCheckpoints(args.model_dir).save_best_model(
        best, args.model_name, performance=results.aggregate.best_performance
    )
    return results.to_dict()


def run_cyclic(args) -> dict:
    roster_path = _optional(args.roster_path)
    roster = load_agent_roster(roster_path) if roster_path is not None else list(DEFAULT_ROSTER)
    aim = AimLogger(
        enabled=not bool(args.no_aim),
        experiment=args.aim_experiment,
        repo_path=args.aim_repo_path,
        run_name="cyclic",
    )
    orchestrator = MultiAgentCyclicOrchestrator(
        model_dir=args.model_dir, seed=args.seed, roster=roster, aim=aim
    )
    cancel = threading.Event()
    timer = _session_timer(args.duration_minutes, cancel)
    try:
        report = orchestrator.run_cyclic_training(
            cancel=cancel,
            episodes_per_cycle=args.episodes_per_cycle,
            max_cycles=args.max_cycles,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted, saving all agents")
        orchestrator.persist_all()
        raise
    finally:
        if timer is not None:
            timer.cancel()
        aim.close()
    return report.to_dict()


def run_offline(args, output_dir: str) -> dict:
    trainer = OfflineTrainer(
        TrainConfig(
            data_dir=args.data_dir,
            model_dir=args.model_dir,
            model_name=args.model_name,
            model_config_path=args.model_config_path,
            layout=args.layout,
            epochs=args.epochs,
            batch_size=args.batch_size,
            prioritized=not bool(args.uniform),
            eval_episodes=args.eval_episodes,
            eval_phase=args.eval_phase,
            seed=args.seed,
            output_dir=output_dir,
            aim_enabled=not bool(args.no_aim),
            aim_experiment=args.aim_experiment,
            aim_repo_path=args.aim_repo_path,
        )
    )
    return trainer.train()


def run_analyze(args, output_dir: str) -> dict:
    episodes = ExperienceStore(args.data_dir).load_all_episodes()
    paths = write_report(episodes, output_dir, window=args.window, action_space_size=args.action_space_size)
    stats = analyze_episodes(episodes, args.action_space_size)
    return {"stats": stats, "artifacts": paths}


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    resolved_output_dir = _timestamped_output_dir(args.output_dir)
    print(f"Output path: {Path(resolved_output_dir).resolve()}")

    if args.command == "parallel":
        result = run_parallel(args, resolved_output_dir)
    elif args.command == "cyclic":
        result = run_cyclic(args)
    elif args.command == "offline":
        result = run_offline(args, resolved_output_dir)
    else:
        result = run_analyze(args, resolved_output_dir)

    print(f"Training complete ({args.command})")
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
