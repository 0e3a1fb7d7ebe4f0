"""
marginalia.api.auth — Identity endpoints
=========================================

Tokens are minted by the external identity provider; this router only
reports who the bearer is.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from marginalia.api.deps import CurrentUser, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user)):
    """Return the current authenticated reader's info."""
    return {"id": user.id, "name": user.name, "image": user.image}
