"""Admin connection tools — see who is connected, push messages to displays."""

import json
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from displayhub.runtime import Runtime, get_runtime

router = APIRouter(prefix="/connections")


class ConnectionRead(BaseModel):
    connection_id: str
    user_id: str
    username: Optional[str] = None
    connected_at: datetime


class OutboundMessage(BaseModel):
    type: str = Field(..., min_length=1)
    payload: Any = None


class DirectMessage(OutboundMessage):
    user_id: str


@router.get("", response_model=list[ConnectionRead])
async def list_connections(runtime: Runtime = Depends(get_runtime)):
    return [
        ConnectionRead(
            connection_id=c.connection_id,
            user_id=c.user_id,
            username=c.username,
            connected_at=c.connected_at,
        )
        for c in runtime.connections.list()
    ]


@router.post("/broadcast")
async def broadcast(body: OutboundMessage, runtime: Runtime = Depends(get_runtime)):
    text = json.dumps({"type": body.type, "payload": body.payload})
    return {"delivered": runtime.connections.broadcast(text)}


@router.post("/send")
async def send(body: DirectMessage, runtime: Runtime = Depends(get_runtime)):
    text = json.dumps({"type": body.type, "payload": body.payload})
    return {"delivered": runtime.connections.send_to_user(body.user_id, text)}
