from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from rendezvous.routers import rooms
from rendezvous.routers import signaling
from rendezvous.config import settings
from rendezvous.schemas import RTCConfig
from rendezvous.services.rooms import registry
import asyncio
import contextlib
import logging

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="Rendezvous WebRTC Signaling")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(signaling.router)
app.include_router(rooms.router)

@app.get("/config", response_model=RTCConfig, response_model_exclude_none=True)
async def rtc_config():
    """Expose ICE server config to clients.

    Environment variables (optional):
    - STUN_SERVER: e.g. stun:stun.example.com:3478
    - TURN_URL: e.g. turn:turn.example.com:3478
    - TURN_USERNAME
    - TURN_PASSWORD
    """
    return {"ice_servers": settings.ice_servers()}

@app.get("/health")
async def health_check():
    return {"status": "healthy", "message": "Signaling server is running", "rooms": len(registry)}

async def sweep_rooms(interval: float):
    """Periodically drop members whose socket is gone, and the rooms they leave empty."""
    while True:
        await asyncio.sleep(interval)
        removed = await registry.prune(signaling.manager.connection_ids())
        if removed:
            logger.info(f"🧹 Swept {removed} empty room(s)")

@app.on_event("startup")
async def on_startup():
    if settings.ROOM_SWEEP_INTERVAL > 0:
        app.state.sweeper = asyncio.create_task(sweep_rooms(settings.ROOM_SWEEP_INTERVAL))

@app.on_event("shutdown")
async def on_shutdown():
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper

def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)

if __name__ == "__main__":
    run()
