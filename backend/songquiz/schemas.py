from pydantic import BaseModel, Field
from typing import List, Optional
from .models import LeaderboardEntry, SessionSnapshot


class RoomMessageIn(BaseModel):
    author_id: str
    text: str
    voice_target: Optional[str] = None
    is_bot: bool = False


class RoomMessageOut(BaseModel):
    replies: List[str] = Field(default_factory=list)
    handled: bool = False


class PresenceIn(BaseModel):
    occupants: int
    bot_present: bool = True


class PresenceOut(BaseModel):
    ended: bool


class SessionStateOut(BaseModel):
    room_id: str
    active: bool
    session: Optional[SessionSnapshot] = None


class LeaderboardOut(BaseModel):
    room_id: str
    active: bool
    leaderboard: List[LeaderboardEntry]


class PackSummaryOut(BaseModel):
    id: str
    name: str
    description: str
    tags: List[str]
    play_count: int
    entry_count: int


class StartSessionIn(BaseModel):
    pack_id: str
    moderator_id: str
    voice_target: Optional[str] = None


class StopSessionIn(BaseModel):
    requester_id: str
