# storefront/api/routers/chat.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import Actor, get_current_actor, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import ChatExchangeOut, ChatMessageIn, ChatMessageOut
from storefront.services.chat_service import ChatService
from storefront.services.lock_service import LockService

router = APIRouter(prefix="/chat", tags=["chat"])


def get_service(db: Session = Depends(get_db)) -> ChatService:
    return ChatService(db, lock_service=LockService())


@router.post("/", response_model=ChatExchangeOut)
def send_message(
    payload: ChatMessageIn,
    actor: Actor = Depends(get_current_actor),
    svc: ChatService = Depends(get_service),
):
    try:
        return svc.process_user_message(actor.user_id, payload.content)
    except ShopError as e:
        raise to_http_error(e)


@router.get("/history", response_model=List[ChatMessageOut])
def get_history(actor: Actor = Depends(get_current_actor), svc: ChatService = Depends(get_service)):
    return svc.get_history(actor.user_id)


@router.delete("/history")
def delete_history(actor: Actor = Depends(get_current_actor), svc: ChatService = Depends(get_service)):
    svc.clear_history(actor.user_id)
    return {"message": "History cleared"}
