from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from support_relay.database import get_db
from support_relay.routers.deps import error_response
from support_relay.schemas.chat import UserRequest
from support_relay.services import user_service
from support_relay.services.bot_engine import BotDecisionEngine, get_bot_engine

router = APIRouter(tags=["users"])


@router.get("/users")
async def list_users(db: Session = Depends(get_db)):
    """List known users without their messages."""
    result = await run_in_threadpool(user_service.list_users, db)
    if not result.ok:
        return error_response(result)
    return result.value


@router.post("/user")
async def get_or_create_user(request: UserRequest, db: Session = Depends(get_db)):
    """Create the user on first contact, otherwise return the existing one."""
    result = await run_in_threadpool(user_service.get_or_create_user, db, request.user_id, request.username)
    if not result.ok:
        return error_response(result)
    return result.value


# Registered before /users/{user_id} so "all" is not taken for an id
@router.delete("/users/all")
async def delete_all_users(db: Session = Depends(get_db), engine: BotDecisionEngine = Depends(get_bot_engine)):
    result = await run_in_threadpool(user_service.delete_all_users, db, engine)
    if not result.ok:
        return error_response(result)
    return result.value


@router.get("/users/{user_id}")
async def get_user(user_id: str, db: Session = Depends(get_db)):
    result = await run_in_threadpool(user_service.get_user, db, user_id)
    if not result.ok:
        return error_response(result)
    return result.value


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    engine: BotDecisionEngine = Depends(get_bot_engine),
):
    result = await run_in_threadpool(user_service.delete_user, db, user_id, engine)
    if not result.ok:
        return error_response(result)
    return result.value
