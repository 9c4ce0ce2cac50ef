"""SQLAlchemy ORM models read by the recommendation pipeline."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class Book(Base):
    __tablename__ = "books"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(450), nullable=False, index=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(300), nullable=False, index=True)
    isbn = Column(String(20), nullable=True)
    genres = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="want_to_read")
    added_date = Column(DateTime, default=datetime.utcnow)

    rating = relationship("Rating", back_populates="book", uselist=False, lazy="selectin")


class Rating(Base):
    __tablename__ = "ratings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    book_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("books.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    score = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    rated_date = Column(DateTime, default=datetime.utcnow)
    updated_date = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="rating")


class UserPreference(Base):
    __tablename__ = "user_preferences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(450), unique=True, nullable=False)
    preferred_genres = Column(JSON, default=list)
    preferred_themes = Column(JSON, default=list)
    favorite_authors = Column(JSON, default=list)
    created_date = Column(DateTime, default=datetime.utcnow)
    updated_date = Column(DateTime, nullable=True)
