# Filename: clouddrive/routers/auth.py
import logging
import secrets
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from ..auth import (
    create_access_token,
    get_current_user,
    get_password_hash,
    get_user_by_email,
    normalize_email,
    verify_password,
)
from ..context import AppContext, get_context, get_session
from ..models import User
from ..oauth import OAuthError
from ..schemas import AuthResponse, LoginRequest, UserCreate, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# the state sent to Google must come back on the callback with this cookie
OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_MAX_AGE = 600


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_in: UserCreate, session: Session = Depends(get_session)):
    if get_user_by_email(session, user_in.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User with this email already exists")
    user = User(
        email=normalize_email(user_in.email),
        hashed_password=get_password_hash(user_in.password),
        first_name=user_in.firstName,
        last_name=user_in.lastName,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("registered user %s", user.id)
    return AuthResponse(
        message="User registered successfully",
        token=create_access_token(user.id, user.email),
        user=UserOut.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(body: LoginRequest, session: Session = Depends(get_session)):
    user = get_user_by_email(session, body.email)
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return AuthResponse(
        message="Login successful",
        token=create_access_token(user.id, user.email),
        user=UserOut.model_validate(user),
    )


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"success": True, "user": UserOut.model_validate(current_user)}


@router.get("/google")
def google_login(ctx: AppContext = Depends(get_context)):
    if not ctx.google.enabled:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google sign-in is not configured")
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(ctx.google.authorization_url(state=state))
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=ctx.settings.environment == "production",
    )
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: str = "",
    state: str = "",
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    client_url = ctx.settings.client_url.rstrip("/")
    failure = RedirectResponse(f"{client_url}/signin?error=oauth_failed")
    failure.delete_cookie(OAUTH_STATE_COOKIE)
    expected = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not ctx.google.enabled:
        return failure
    if not state or not expected or not secrets.compare_digest(state.encode(), expected.encode()):
        logger.warning("google oauth callback with missing or mismatched state")
        return failure
    try:
        profile = await ctx.google.fetch_profile(code)
    except OAuthError:
        logger.exception("google oauth callback failed")
        return failure

    user = get_user_by_email(session, profile["email"])
    if user is None:
        user = User(
            email=normalize_email(profile["email"]),
            first_name=profile.get("given_name"),
            last_name=profile.get("family_name"),
            google_id=profile.get("sub"),
        )
        session.add(user)
    elif not user.google_id:
        user.google_id = profile.get("sub")
        user.updated_at = datetime.utcnow()
        session.add(user)
    session.commit()
    session.refresh(user)

    token = create_access_token(user.id, user.email)
    response = RedirectResponse(f"{client_url}/drive?token={token}&login=success")
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return response


@router.post("/logout")
def logout():
    # tokens are stateless; the client drops its copy
    return {"success": True, "message": "Logged out successfully"}
