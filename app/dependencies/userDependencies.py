"""
Identidad del usuario que ejecuta la operación.

La autenticación vive en el gateway upstream; este servicio solo recibe el
usuario ya validado en los headers ``X-User-ID`` y ``X-User-Email``.
"""
from typing import Optional
from fastapi import Header, HTTPException, status
from pydantic import BaseModel


class Actor(BaseModel):
    user_id: str
    email: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        """Actor usado por tareas programadas (Celery)."""
        return cls(user_id="system", email=None)


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Actor:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Header X-User-ID requerido"
        )
    return Actor(user_id=x_user_id, email=x_user_email)
