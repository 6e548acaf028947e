from __future__ import annotations
from sqlalchemy import create_engine, Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
import datetime
import os
import uuid
from typing import Optional, List, Any, Dict, TYPE_CHECKING

if TYPE_CHECKING:
    from .structured import LearningPathway

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

VISIBILITIES = ("public", "private")
ROLES = ("user", "assistant", "system")


class Base(DeclarativeBase):
    pass
DB_PATH: str = os.environ.get("LLM_CARDS_DB", "learning_cards.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    password: Mapped[Optional[str]] = mapped_column(String(64))


class Chat(Base):
    __tablename__ = "chats"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=_now)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="private")


class Message(Base):
    __tablename__ = "messages"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[Any] = mapped_column(JSON, nullable=False)  # raw reply text, or a JSON document
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=_now)


class Vote(Base):
    __tablename__ = "votes"
    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.id"), primary_key=True)
    message_id: Mapped[str] = mapped_column(String(36), ForeignKey("messages.id"), primary_key=True)
    is_upvoted: Mapped[bool] = mapped_column(Boolean, nullable=False)


class Roadmap(Base):
    __tablename__ = "roadmaps"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=_now, onupdate=_now)


class RoadmapStep(Base):
    __tablename__ = "roadmap_steps"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    roadmap_id: Mapped[int] = mapped_column(Integer, ForeignKey("roadmaps.id"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    order: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based sequence across levels
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=_now)


class StorageItem(Base):
    """Per-user key/value store with browser localStorage semantics."""
    __tablename__ = "storage_items"
    __table_args__ = (UniqueConstraint("user_id", "key", name="uq_storage_items_user_key"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    table_names = inspector.get_table_names()

    required_tables = {'users', 'chats', 'messages', 'votes', 'roadmaps', 'roadmap_steps', 'storage_items'}
    return required_tables.issubset(set(table_names))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


# ----------------------------------------------------------------------
# Users and chats
# ----------------------------------------------------------------------

def get_or_create_user(email: str) -> User:
    session: Session = get_session()
    user = session.query(User).filter_by(email=email).first()
    if user is None:
        user = User(email=email)
        session.add(user)
        session.commit()
        if DEBUG_MODE:
            print(f"👤 Created user {email} ({user.id})")
    session.close()
    return user


def save_chat(user_id: str, title: str, visibility: str = "private", chat_id: Optional[str] = None) -> Chat:
    if visibility not in VISIBILITIES:
        raise ValueError(f"Unknown visibility '{visibility}'")
    session: Session = get_session()
    chat = Chat(id=chat_id or _new_id(), user_id=user_id, title=title, visibility=visibility)
    session.add(chat)
    session.commit()
    session.close()
    return chat


def get_chat_by_id(chat_id: str) -> Optional[Chat]:
    session: Session = get_session()
    chat = session.get(Chat, chat_id)
    session.close()
    return chat


def get_chats_by_user(user_id: str) -> List[Chat]:
    """Chats for a user, newest first."""
    session: Session = get_session()
    chats = (
        session.query(Chat)
        .filter(Chat.user_id == user_id)
        .order_by(Chat.created_at.desc())
        .all()
    )
    session.close()
    return chats


def update_chat_visibility(chat_id: str, visibility: str) -> bool:
    if visibility not in VISIBILITIES:
        raise ValueError(f"Unknown visibility '{visibility}'")
    session: Session = get_session()
    chat = session.get(Chat, chat_id)
    if chat is None:
        session.close()
        return False
    chat.visibility = visibility
    session.commit()
    session.close()
    return True


def delete_chat(chat_id: str) -> bool:
    """Delete a chat with its votes and messages. Returns False if it did not exist."""
    session: Session = get_session()
    chat = session.get(Chat, chat_id)
    if chat is None:
        session.close()
        return False
    session.query(Vote).filter(Vote.chat_id == chat_id).delete()
    session.query(Message).filter(Message.chat_id == chat_id).delete()
    session.delete(chat)
    session.commit()
    session.close()
    return True


# ----------------------------------------------------------------------
# Messages and votes
# ----------------------------------------------------------------------

def save_message(chat_id: str, role: str, content: Any) -> Message:
    if role not in ROLES:
        raise ValueError(f"Unknown message role '{role}'")
    session: Session = get_session()
    msg = Message(chat_id=chat_id, role=role, content=content)
    session.add(msg)
    session.commit()
    session.close()
    return msg


def get_messages_by_chat(chat_id: str) -> List[Message]:
    """Messages of a chat, oldest first."""
    session: Session = get_session()
    rows = (
        session.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.created_at.asc())
        .all()
    )
    session.close()
    return rows


def get_message_by_id(message_id: str) -> Optional[Message]:
    session: Session = get_session()
    msg = session.get(Message, message_id)
    session.close()
    return msg


def vote_message(chat_id: str, message_id: str, vote: str) -> None:
    """Upsert an up/down vote for a message in a chat."""
    if vote not in ("up", "down"):
        raise ValueError(f"Vote must be 'up' or 'down', got '{vote}'")
    session: Session = get_session()
    msg = session.get(Message, message_id)
    if msg is None or msg.chat_id != chat_id:
        session.close()
        raise ValueError("Message not found in chat")
    existing = session.get(Vote, (chat_id, message_id))
    if existing is None:
        session.add(Vote(chat_id=chat_id, message_id=message_id, is_upvoted=(vote == "up")))
    else:
        existing.is_upvoted = vote == "up"
    session.commit()
    session.close()


def unvote_message(chat_id: str, message_id: str) -> bool:
    session: Session = get_session()
    deleted = session.query(Vote).filter_by(chat_id=chat_id, message_id=message_id).delete()
    session.commit()
    session.close()
    return deleted > 0


def get_votes_by_chat(chat_id: str) -> List[Dict[str, Any]]:
    session: Session = get_session()
    votes = session.query(Vote).filter(Vote.chat_id == chat_id).all()
    session.close()
    return [
        {"chatId": v.chat_id, "messageId": v.message_id, "isUpvoted": v.is_upvoted}
        for v in votes
    ]


# ----------------------------------------------------------------------
# Roadmaps
# ----------------------------------------------------------------------

def save_roadmap_from_pathway(pathway: "LearningPathway") -> int:
    """Persist a pathway as a roadmap with its steps flattened in level order.

    Returns the new roadmap id.
    """
    session: Session = get_session()
    roadmap = Roadmap(title=pathway.title, description=pathway.description)
    session.add(roadmap)
    session.flush()

    order = 0
    for level in pathway.level_names():
        for step in pathway.steps_for(level):
            order += 1
            description = step.content.introduction or step.content.explanation or None
            session.add(RoadmapStep(
                roadmap_id=roadmap.id,
                title=f"{level}: {step.title}",
                description=description,
                order=order,
            ))

    session.commit()
    roadmap_id = roadmap.id
    session.close()
    if DEBUG_MODE:
        print(f"🗺️  Saved roadmap #{roadmap_id} with {order} steps")
    return roadmap_id


def get_roadmap(roadmap_id: int) -> Optional[Dict[str, Any]]:
    session: Session = get_session()
    roadmap = session.get(Roadmap, roadmap_id)
    if roadmap is None:
        session.close()
        return None
    steps = (
        session.query(RoadmapStep)
        .filter(RoadmapStep.roadmap_id == roadmap_id)
        .order_by(RoadmapStep.order.asc())
        .all()
    )
    result = {
        "id": roadmap.id,
        "title": roadmap.title,
        "description": roadmap.description,
        "created_at": roadmap.created_at.isoformat(),
        "steps": [
            {"id": s.id, "title": s.title, "description": s.description, "order": s.order}
            for s in steps
        ],
    }
    session.close()
    return result


# ----------------------------------------------------------------------
# Key/value storage
# ----------------------------------------------------------------------

def storage_get_item(user_id: str, key: str) -> Optional[str]:
    session: Session = get_session()
    item = session.query(StorageItem).filter_by(user_id=user_id, key=key).first()
    value = item.value if item else None
    session.close()
    return value


def storage_set_item(user_id: str, key: str, value: str) -> None:
    session: Session = get_session()
    item = session.query(StorageItem).filter_by(user_id=user_id, key=key).first()
    if item is None:
        session.add(StorageItem(user_id=user_id, key=key, value=value))
    else:
        item.value = value
    session.commit()
    session.close()


def storage_remove_item(user_id: str, key: str) -> None:
    session: Session = get_session()
    session.query(StorageItem).filter_by(user_id=user_id, key=key).delete()
    session.commit()
    session.close()


__all__ = [
    "Base", "User", "Chat", "Message", "Vote", "Roadmap", "RoadmapStep", "StorageItem",
    "init_db", "is_db_initialized", "get_session",
    "get_or_create_user", "save_chat", "get_chat_by_id", "get_chats_by_user",
    "update_chat_visibility", "delete_chat",
    "save_message", "get_messages_by_chat", "get_message_by_id",
    "vote_message", "unvote_message", "get_votes_by_chat",
    "save_roadmap_from_pathway", "get_roadmap",
    "storage_get_item", "storage_set_item", "storage_remove_item",
]
