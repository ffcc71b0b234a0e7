from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .catalog import CatalogStore
from .commands import CommandHandler
from .db import db, settings
from .errors import AuthorizationError, CatalogError, PackNotFound, SessionAlreadyActive, SetupError
from .events import EventStore
from .game import SessionRegistry
from .logging_setup import configure_logging
from .media import YtDlpExtractor
from .schemas import (
    LeaderboardOut,
    PackSummaryOut,
    PresenceIn,
    PresenceOut,
    RoomMessageIn,
    RoomMessageOut,
    SessionStateOut,
    StartSessionIn,
    StopSessionIn,
)

event_store = EventStore(db)
catalog = CatalogStore(db)
registry = SessionRegistry(catalog, event_store, YtDlpExtractor(settings), settings)
commands = CommandHandler(registry, catalog, settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    if settings.CATALOG_SEED_PATH:
        await catalog.load_seed(settings.CATALOG_SEED_PATH)
    yield
    await registry.shutdown()


app = FastAPI(title="SongQuiz API", lifespan=lifespan)

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
origin_regex = settings.CORS_ORIGIN_REGEX or None

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_origin_regex=origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health():
    return {"ok": True}


@app.post("/api/rooms/{room_id}/messages", response_model=RoomMessageOut)
async def post_message(room_id: str, payload: RoomMessageIn):
    if payload.is_bot:
        return RoomMessageOut()
    result = await commands.handle_message(room_id, payload.author_id, payload.text, payload.voice_target)
    return RoomMessageOut(replies=result.replies, handled=result.handled)


@app.post("/api/rooms/{room_id}/presence", response_model=PresenceOut)
async def post_presence(room_id: str, payload: PresenceIn):
    ended = await registry.handle_presence(room_id, payload.occupants, payload.bot_present)
    return PresenceOut(ended=ended)


@app.get("/api/rooms/{room_id}/session", response_model=SessionStateOut)
async def get_session(room_id: str):
    session = registry.get(room_id)
    if session is None:
        return SessionStateOut(room_id=room_id, active=False)
    return SessionStateOut(room_id=room_id, active=session.active, session=session.snapshot())


@app.get("/api/rooms/{room_id}/leaderboard", response_model=LeaderboardOut)
async def get_leaderboard(room_id: str):
    leaderboard = registry.leaderboard(room_id)
    return LeaderboardOut(room_id=room_id, active=registry.is_active(room_id), leaderboard=leaderboard or [])


@app.get("/api/rooms/{room_id}/events")
async def list_events(room_id: str, after: int | None = None, limit: int = 200):
    events = await event_store.list(room_id, after=after, limit=limit)
    latest_seq = events[-1]["seq"] if events else after
    return {"events": events, "latest_seq": latest_seq}


@app.get("/api/packs", response_model=list[PackSummaryOut])
async def list_packs(tag: Optional[str] = None):
    packs = await catalog.list_packs(tag)
    return [
        PackSummaryOut(
            id=p.id,
            name=p.name,
            description=p.description,
            tags=p.tags,
            play_count=p.play_count,
            entry_count=len(p.entries),
        )
        for p in packs
    ]


def require_admin(x_admin_key: Optional[str] = Header(default=None)):
    if x_admin_key != settings.ADMIN_KEY:
        raise HTTPException(status_code=401, detail="Invalid admin key")


@app.post("/api/admin/rooms/{room_id}/start", response_model=SessionStateOut)
async def start_session(room_id: str, payload: StartSessionIn, _: None = Depends(require_admin)):
    try:
        session = await registry.start(room_id, payload.pack_id, payload.moderator_id, payload.voice_target)
    except PackNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionAlreadyActive as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SetupError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CatalogError as exc:
        raise HTTPException(status_code=502, detail="Catalog unavailable") from exc
    return SessionStateOut(room_id=room_id, active=session.active, session=session.snapshot())


@app.post("/api/admin/rooms/{room_id}/stop", response_model=LeaderboardOut)
async def stop_session(room_id: str, payload: StopSessionIn, _: None = Depends(require_admin)):
    session = registry.get(room_id)
    if session is None:
        raise HTTPException(404, "No game is running in this room")
    try:
        leaderboard = await session.stop(payload.requester_id)
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return LeaderboardOut(room_id=room_id, active=False, leaderboard=leaderboard)
