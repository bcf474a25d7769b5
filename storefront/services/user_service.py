from sqlalchemy.orm import Session
from storefront.data.models.user import UserModel
from storefront.domain.errors import DuplicateEmail, UserNotFound
from storefront.repos.user_repo import UserRepo
from storefront.domain.schemas import UserCreate, UserRead
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class UserService:
    """
    Local user records. Accounts themselves live with the upstream
    authenticator, this only keeps what orders and chats reference.
    """

    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserRead:
        email = payload.email.strip().lower()

        #same email -> same user, no duplicate
        existing = self.repo.get_by_email(email)
        if existing:
            return UserRead.model_validate(existing)

        try:
            created = self.repo.create_user(UserModel(email=email, name=payload.name, role=payload.role))
        except DuplicateEmail:
            # lost the insert race, the other request's row is the user
            existing = self.repo.get_by_email(email)
            if not existing:
                raise
            return UserRead.model_validate(existing)

        logger.info(f"User {created.id} created with role {created.role}")
        return UserRead.model_validate(created)

    def get_user(self, user_id: int) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise UserNotFound()
        return UserRead.model_validate(user)
