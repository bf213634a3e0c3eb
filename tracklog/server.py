# tracklog/server.py
"""
FastAPI server exposing the recorder's control surface.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from starlette.responses import JSONResponse

from tracklog.errors import InvalidStateError, StorageBusyError
from tracklog.recording.config import MANAGED_KEYS, RecorderConfig
from tracklog.recording.service import RecordingService
from tracklog.recording.source import PushSource
from tracklog.recording.types import Fix
from tracklog.storage.dao import DAO
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Marker, PreferenceValue, RecorderStatus, Thresholds, Track

logger = get_logger(__name__)


def db_path_for(name: str) -> str:
    return f"tracklog_{name}.sqlite"


def create_app(name: str, db_path: Optional[str] = None, config: Optional[RecorderConfig] = None) -> FastAPI:
    """
    Build a FastAPI instance bound to one recorder database.

    Fixes posted to /api/fixes go through a PushSource, so they are only
    processed while the recorder is registered with it.
    """
    db_path = db_path or db_path_for(name)
    source = PushSource()
    service = RecordingService(lambda: DAO(db_path), source, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        service.close()

    app = FastAPI(lifespan=lifespan)
    app.state.name = name
    app.state.db_path = db_path
    app.state.service = service
    app.state.source = source

    @app.exception_handler(InvalidStateError)
    async def invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(StorageBusyError)
    async def storage_busy(request: Request, exc: StorageBusyError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/api/status", response_model=RecorderStatus)
    def status(request: Request):
        return request.app.state.service.status()

    @app.post("/api/tracks", response_class=JSONResponse)
    def start_track(request: Request) -> JSONResponse:
        track_id = request.app.state.service.start_new_track()
        return JSONResponse(status_code=201, content={"track_id": track_id})

    @app.post("/api/tracks/current/end", response_class=JSONResponse)
    def end_track(request: Request) -> JSONResponse:
        request.app.state.service.end_current_track()
        return JSONResponse(status_code=200, content={"recording": False})

    @app.get("/api/tracks/{track_id}", response_model=Track)
    def get_track(request: Request, track_id: int):
        # read-only queries use their own connection
        dao = DAO(request.app.state.db_path)
        try:
            track = dao.get_track(track_id)
        finally:
            dao.close()
        if track is None:
            raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
        return track

    @app.get("/api/tracks/{track_id}/markers", response_model=list[Marker])
    def get_markers(request: Request, track_id: int):
        dao = DAO(request.app.state.db_path)
        try:
            return dao.get_markers(track_id)
        finally:
            dao.close()

    @app.post("/api/fixes", response_class=JSONResponse)
    def push_fix(request: Request, fix: Fix) -> JSONResponse:
        """
        Deliver a fix as if it came from the positioning source.
        """
        delivered = request.app.state.source.push(fix)
        if delivered:
            request.app.state.service.drain()
        return JSONResponse(status_code=202, content={"delivered": delivered})

    @app.post("/api/markers/waypoint", response_class=JSONResponse)
    def insert_waypoint(request: Request, marker: Marker) -> JSONResponse:
        marker_id = request.app.state.service.insert_waypoint_marker(marker)
        return JSONResponse(status_code=201, content={"marker_id": marker_id})

    @app.post("/api/markers/statistics", response_class=JSONResponse)
    def insert_statistics(request: Request, fix: Optional[Fix] = None) -> JSONResponse:
        marker_id = request.app.state.service.insert_statistics_marker(fix)
        return JSONResponse(status_code=201, content={"marker_id": marker_id})

    @app.put("/api/thresholds", response_class=JSONResponse)
    def set_thresholds(request: Request, thresholds: Thresholds) -> JSONResponse:
        request.app.state.service.set_thresholds(
            thresholds.min_recording_distance,
            thresholds.max_recording_distance,
            thresholds.min_required_accuracy,
        )
        return JSONResponse(status_code=200, content=thresholds.model_dump())

    @app.put("/api/preferences/{key}", response_class=JSONResponse)
    def set_preference(request: Request, key: str, body: PreferenceValue) -> JSONResponse:
        if key in MANAGED_KEYS:
            raise HTTPException(status_code=409, detail=f"{key} is managed by the recorder")
        request.app.state.service.set_preference(key, body.value)
        return JSONResponse(status_code=200, content={key: body.value})

    return app
