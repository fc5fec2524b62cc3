"""Experience recording, episode finalization and JSON episode persistence."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import CorruptRecordError, PersistenceError
from .featurize import validate_state

logger = logging.getLogger(__name__)

SESSION_ID_FORMAT = "%Y%m%d_%H%M%S"
EPISODE_GLOB = "episode_*.json"
CONSOLIDATED_NAME = "consolidated_training_data.json"


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class Experience:
    state: Tuple[float, ...]
    action: int
    reward: float
    next_state: Tuple[float, ...]
    done: bool
    confidence: float = 1.0
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": list(self.state),
            "action": self.action,
            "reward": self.reward,
            "next_state": list(self.next_state),
            "is_done": self.done,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, row: Dict[str, object]) -> "Experience":
        return cls(
            state=tuple(float(v) for v in row["state"]),
            action=int(row["action"]),
            reward=float(row["reward"]),
            next_state=tuple(float(v) for v in row["next_state"]),
            done=bool(row["is_done"]),
            confidence=float(row.get("confidence", 1.0)),
            timestamp=str(row.get("timestamp", "")),
        )


@dataclass(frozen=True)
class Episode:
    episode_number: int
    session_id: str
    experiences: Tuple[Experience, ...]
    total_reward: float
    timestamp: str = field(default_factory=_now_iso)

    def __len__(self) -> int:
        return len(self.experiences)

    @property
    def key(self) -> str:
        return f"{self.session_id}_{self.episode_number:05d}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "episode": self.episode_number,
            "session_id": self.session_id,
            "experiences_count": len(self.experiences),
            "total_reward": self.total_reward,
            "timestamp": self.timestamp,
            "experiences": [e.to_dict() for e in self.experiences],
        }

    @classmethod
    def from_dict(cls, raw: object) -> "Episode":
        if not isinstance(raw, dict):
            raise CorruptRecordError("episode record must be an object")
        try:
            rows = raw["experiences"]
            if not isinstance(rows, list):
                raise CorruptRecordError("episode 'experiences' must be an array")
            experiences = tuple(Experience.from_dict(row) for row in rows)
            episode = cls(
                episode_number=int(raw["episode"]),
                session_id=str(raw["session_id"]),
                experiences=experiences,
                total_reward=float(raw["total_reward"]),
                timestamp=str(raw.get("timestamp", "")),
            )
        except CorruptRecordError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptRecordError(f"malformed episode record: {exc}") from exc
        count = raw.get("experiences_count")
        if count is not None and int(count) != len(experiences):
            raise CorruptRecordError(
                f"experiences_count {count} does not match {len(experiences)} experiences"
            )
        return episode


class ExperienceStore:
    """Collects experiences into episodes and persists them one file per episode.

    In-progress episodes are buffered per `stream` so several environments can
    record into one store without interleaving. Episode numbers are global to
    the store and never reused.
    """

    def __init__(
        self,
        data_dir: str | Path = "training_data",
        state_dim: Optional[int] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.state_dim = None if state_dim is None else int(state_dim)
        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._buffers: Dict[int, List[Experience]] = {}
        self._totals: Dict[int, float] = {}
        self._episode_count = 0
        self._closed_experiences = 0
        base = session_id or clock().strftime(SESSION_ID_FORMAT)
        self.session_id = self._unique_session_id(base)

    def _unique_session_id(self, base: str) -> str:
        if not self.data_dir.exists():
            return base
        candidate = base
        suffix = 0
        while any(self.data_dir.glob(f"episode_{candidate}_*.json")):
            suffix += 1
            candidate = f"{base}_{suffix}"
        return candidate

    @property
    def episode_count(self) -> int:
        with self._lock:
            return self._episode_count

    @property
    def experience_count(self) -> int:
        with self._lock:
            return self._closed_experiences + sum(len(b) for b in self._buffers.values())

    def current_buffer(self, stream: int = 0) -> Tuple[Experience, ...]:
        with self._lock:
            return tuple(self._buffers.get(stream, ()))

    def record_experience(
        self,
        state: Sequence[float],
        action: int,
        reward: float,
        next_state: Sequence[float],
        done: bool,
        confidence: float = 1.0,
        stream: int = 0,
    ) -> Experience:
        if self.state_dim is not None:
            validate_state(state, self.state_dim)
            validate_state(next_state, self.state_dim, what="next_state")
        experience = Experience(
            state=tuple(float(v) for v in state),
            action=int(action),
            reward=float(reward),
            next_state=tuple(float(v) for v in next_state),
            done=bool(done),
            confidence=float(confidence),
        )
        with self._lock:
            self._buffers.setdefault(stream, []).append(experience)
            self._totals[stream] = self._totals.get(stream, 0.0) + experience.reward
        return experience

    def end_episode(self, stream: int = 0) -> Tuple[Episode, int, float]:
        with self._lock:
            buffer = self._buffers.pop(stream, [])
            total = self._totals.pop(stream, 0.0)
            self._episode_count += 1
            number = self._episode_count
            self._closed_experiences += len(buffer)
            episode = Episode(
                episode_number=number,
                session_id=self.session_id,
                experiences=tuple(buffer),
                total_reward=total,
            )
        return episode, number, total

    def discard_episode(self, stream: int = 0) -> int:
        """Drop an unfinished episode buffer without using an episode number."""
        with self._lock:
            buffer = self._buffers.pop(stream, [])
            self._totals.pop(stream, None)
        return len(buffer)

    def close(self) -> List[Episode]:
        """Finalize every non-empty in-progress episode at session end."""
        with self._lock:
            streams = sorted(s for s, buf in self._buffers.items() if buf)
        return [self.end_episode(stream)[0] for stream in streams]

    def episode_path(self, episode: Episode) -> Path:
        return self.data_dir / f"episode_{episode.key}.json"

    def _write_episode(self, episode: Episode) -> Path:
        path = self.episode_path(episode)
        payload = json.dumps(episode.to_dict(), indent=2)
        with self._io_lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                path.write_text(payload, encoding="utf-8")
            except OSError as exc:
                raise PersistenceError(f"failed to write episode {episode.key} to {path}: {exc}") from exc
        return path

    def persist_episode(self, episode: Episode) -> Optional[Path]:
        try:
            path = self._write_episode(episode)
        except PersistenceError as exc:
            logger.warning("Skipping episode persistence: %s", exc)
            return None
        logger.debug("Saved episode %s (%d experiences)", episode.key, len(episode))
        return path

    @staticmethod
    def read_episode(path: str | Path) -> Episode:
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CorruptRecordError(f"cannot read {path}: {exc}") from exc
        return Episode.from_dict(raw)

    def episode_files(self) -> List[Path]:
        if not self.data_dir.exists():
            return []
        return sorted(self.data_dir.glob(EPISODE_GLOB))

    def load_all_episodes(self) -> List[Episode]:
        episodes: List[Episode] = []
        for path in self.episode_files():
            try:
                episodes.append(self.read_episode(path))
            except CorruptRecordError as exc:
                logger.warning("Skipping corrupt episode file %s: %s", path.name, exc)
        episodes.sort(key=lambda e: (e.session_id, e.episode_number))
        logger.info("Loaded %d episodes from %s", len(episodes), self.data_dir)
        return episodes

    def export_consolidated(self, path: str | Path | None = None) -> Path:
        episodes = self.load_all_episodes()
        out = Path(path) if path is not None else self.data_dir / CONSOLIDATED_NAME
        payload = {
            "export_date": _now_iso(),
            "total_episodes": len(episodes),
            "total_experiences": sum(len(e) for e in episodes),
            "episodes": [e.to_dict() for e in episodes],
        }
        with self._io_lock:
            try:
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            except OSError as exc:
                raise PersistenceError(f"failed to export consolidated data to {out}: {exc}") from exc
        logger.info("Exported %d episodes to %s", len(episodes), out)
        return out

    def data_stats(self) -> Dict[str, object]:
        files = self.episode_files()
        episodes = self.load_all_episodes()
        total_reward = sum(e.total_reward for e in episodes)
        return {
            "session_id": self.session_id,
            "files": len(files),
            "total_episodes": len(episodes),
            "total_experiences": sum(len(e) for e in episodes),
            "total_reward": total_reward,
            "average_reward": total_reward / len(episodes) if episodes else 0.0,
            "bytes_on_disk": sum(p.stat().st_size for p in files if p.exists()),
        }

    def cleanup(self, keep_recent: int = 50) -> int:
        """Delete all but the `keep_recent` most recently written episode files."""
        files = sorted(self.episode_files(), key=lambda p: p.stat().st_mtime, reverse=True)
        removed = 0
        with self._io_lock:
            for path in files[max(0, int(keep_recent)):]:
                try:
                    path.unlink()
                    removed += 1
                except OSError as exc:
                    logger.warning("Could not delete %s: %s", path, exc)
        if removed:
            logger.info("Removed %d old episode files from %s", removed, self.data_dir)
        return removed

    def clear_all(self) -> int:
        return self.cleanup(keep_recent=0)
