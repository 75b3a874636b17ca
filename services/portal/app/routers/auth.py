from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from services.portal.app.client import ClientContext, get_client
from services.portal.app.models.user import AuthResult, LoginRequest, SignupRequest, User

router = APIRouter()


@router.post("/v1/auth/signup", response_model=AuthResult)
def signup(payload: SignupRequest, client: ClientContext = Depends(get_client)) -> AuthResult:
    result = client.gate.signup(payload)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    result.redirect_url = client.gate.resolve_post_login_redirect()
    return result


@router.post("/v1/auth/login", response_model=AuthResult)
def login(payload: LoginRequest, client: ClientContext = Depends(get_client)) -> AuthResult:
    result = client.gate.login(payload.email, payload.password)
    if not result.success:
        raise HTTPException(status_code=401, detail=result.error)

    result.redirect_url = client.gate.resolve_post_login_redirect()
    return result


@router.post("/v1/auth/logout")
def logout(client: ClientContext = Depends(get_client)) -> dict:
    client.gate.logout()
    return {"status": "ok"}


@router.get("/v1/auth/me", response_model=User)
def me(client: ClientContext = Depends(get_client)) -> User:
    user = client.gate.get_current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


@router.delete("/v1/session")
def end_session(client: ClientContext = Depends(get_client)) -> dict:
    # Same as closing the tab: pending actions and return URLs are gone.
    client.session.clear()
    return {"status": "ok"}
