from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    performer: str
    canonical_name: str
    possible_answers: tuple[str, ...] = ()
    video_id: str
    song_start: int = 0  # seconds
    play_duration: int = 0  # seconds; <= 0 plays to the end (capped by MAX_ROUND_SECONDS)

    @property
    def plays_to_end(self) -> bool:
        return self.play_duration <= 0

    def answer_text(self) -> str:
        return f'{self.performer} - "{self.canonical_name}"'


class Pack(BaseModel):
    id: str
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    play_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    entries: List[RoundEntry] = Field(default_factory=list)


class Participant(BaseModel):
    id: str
    joined_at: datetime = Field(default_factory=_utcnow)


# Round lifecycle: preparing -> playing -> resolved -> (next preparing | session over)
class RoundPhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    PLAYING = "playing"
    RESOLVED = "resolved"
    OVER = "over"


class RoundOutcome(str, Enum):
    CORRECT = "correct"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"
    ERROR = "error"


class RoundResult(BaseModel):
    index: int
    entry_id: str
    outcome: RoundOutcome
    winner_id: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    participant_id: str
    score: int


class SessionSnapshot(BaseModel):
    room_id: str
    pack_id: str
    pack_name: str
    moderator_id: str
    active: bool
    phase: RoundPhase
    current_round: int
    total_rounds: int
    participants: List[Participant]
    leaderboard: List[LeaderboardEntry]
    results: List[RoundResult]
