"""
marginalia.api.routes.home — Home page aggregate
=================================================

    GET /home — Followed readers and their recent stories
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marginalia.api.deps import CurrentUser, get_current_user, get_session
from marginalia.services import home_service

router = APIRouter(tags=["home"])


@router.get("/home")
def home(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return home_service.get_home(session, user.id)
