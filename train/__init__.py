"""Training utilities for arcade agents."""

from .checkpoints import ModelCheckpoints
from .orchestrator import CyclicTrainingReport, MultiAgentCyclicOrchestrator, RangeAgent, TrainableAgent
from .parallel import ParallelConfig, ParallelTrainingCoordinator, ParallelTrainingResults
from .policies import ModelConfig, ValueApproximator, load_model_config
from .roster import DEFAULT_ROSTER, AgentSpec, load_agent_roster
from .trainer import OfflineTrainer, TrainConfig

__all__ = [
    "ModelConfig",
    "ValueApproximator",
    "load_model_config",
    "ModelCheckpoints",
    "AgentSpec",
    "DEFAULT_ROSTER",
    "load_agent_roster",
    "ParallelConfig",
    "ParallelTrainingCoordinator",
    "ParallelTrainingResults",
    "TrainableAgent",
    "RangeAgent",
    "MultiAgentCyclicOrchestrator",
    "CyclicTrainingReport",
    "TrainConfig",
    "OfflineTrainer",
]
