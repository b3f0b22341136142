from typing import Any
from pydantic import BaseModel


class UserPayload(BaseModel):
    # Pas de validation: champs absents -> None, types acceptés tels quels
    name: Any = None
    email: Any = None


class UserResponse(BaseModel):
    id: int
    name: Any = None
    email: Any = None

    class Config:
        from_attributes = True  # Pour compatibilité Pydantic v2
