from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import etag_for
from collabtask.config import settings
from collabtask.deps import get_current_actor, get_db, reject_if_match
from collabtask.logging_config import get_logger
from collabtask.models import User
from collabtask.routers.users import _user_out
from collabtask.schemas import LoginIn, RegisterIn, TokenOut, UserOut
from collabtask.security import create_access_token, verify_password
from collabtask.services.users import normalize_email, register_user

router = APIRouter(prefix="/auth", tags=["auth"])

logger = get_logger(__name__)


@router.post("/register", dependencies=[Depends(reject_if_match)])
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)) -> Response:
  result = await register_user(db, email=payload.email, name=payload.name, password=payload.password)
  body = _user_out(result.record) if result.succeeded else None
  location = f"/users/{result.record.id}" if result.succeeded else None
  return to_http(result, body=body, location=location)


@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, db: AsyncSession = Depends(get_db)) -> TokenOut:
  res = await db.execute(select(User).where(User.email == normalize_email(payload.email)))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("login_failed")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  logger.info("login_succeeded", user_id=u.id)
  return TokenOut(accessToken=create_access_token(u.id), expiresIn=settings.jwt_ttl_minutes * 60)


@router.get("/me", response_model=UserOut)
async def me(response: Response, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)) -> UserOut:
  u = await db.get(User, actor.user_id)
  if not u:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  response.headers["ETag"] = etag_for(u.row_version)
  return _user_out(u)
