"""
Appointment Model
The slice of an appointment the call flow needs
"""
from pydantic import BaseModel
from typing import Optional

ROOM_PREFIX = "gf-call-"


def room_id_for(appointment_id: str) -> str:
    return f"{ROOM_PREFIX}{appointment_id}"


class Appointment(BaseModel):
    """Appointment between a nutritionist (caller) and a client (callee)"""
    id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    nutritionist_id: Optional[str] = None
    nutritionist_name: Optional[str] = None

    @property
    def room_id(self) -> str:
        return room_id_for(self.id)
