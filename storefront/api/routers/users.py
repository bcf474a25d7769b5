from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from storefront.api.deps import Actor, get_current_actor, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.services.user_service import UserService
from storefront.domain.schemas import UserCreate, UserRead

router = APIRouter(prefix="/users", tags=["users"])

@router.post("/", response_model=UserRead)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    service = UserService(db)
    try:
        return service.create_user(payload)
    except ShopError as e:
        raise to_http_error(e)

@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    if actor.user_id != user_id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="Unauthorized access")
    service = UserService(db)
    try:
        return service.get_user(user_id)
    except ShopError as e:
        raise to_http_error(e)
