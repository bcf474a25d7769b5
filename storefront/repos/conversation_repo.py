# storefront/repos/conversation_repo.py
from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from storefront.data.models.conversation import ConversationModel, MessageModel


class ConversationRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: int) -> ConversationModel | None:
        return self.db.execute(
            select(ConversationModel).where(ConversationModel.user_id == user_id)
        ).scalar_one_or_none()

    def create(self, conversation: ConversationModel) -> ConversationModel:
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def get_messages(self, conversation_id: int) -> list[MessageModel]:
        return list(
            self.db.execute(
                select(MessageModel)
                .where(MessageModel.conversation_id == conversation_id)
                .order_by(MessageModel.id)
            ).scalars().all()
        )

    def add_message(self, message: MessageModel) -> MessageModel:
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def save_summary(self, conversation: ConversationModel, summary: str, covered: int) -> None:
        conversation.summary = summary
        conversation.summarized_count = covered
        self.db.commit()

    def clear(self, conversation: ConversationModel) -> None:
        self.db.execute(
            delete(MessageModel).where(MessageModel.conversation_id == conversation.id)
        )
        conversation.summary = None
        conversation.summarized_count = 0
        self.db.commit()
