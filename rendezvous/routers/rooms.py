from fastapi import APIRouter, HTTPException
import logging

from rendezvous.config import settings
from rendezvous.models import new_room_id
from rendezvous.schemas import RoomCreated, RoomInfo
from rendezvous.services.rooms import registry

router = APIRouter(prefix="/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.post("", response_model=RoomCreated, status_code=201)
def create_room():
    room_id = new_room_id(settings.ROOM_ID_BYTES)
    logger.info("Issued room id %s", room_id)
    return RoomCreated(room_id=room_id)


@router.get("/{room_id}", response_model=RoomInfo)
def get_room(room_id: str):
    members = registry.members(room_id)
    if members is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomInfo(room_id=room_id, members=len(members), capacity=registry.capacity)
