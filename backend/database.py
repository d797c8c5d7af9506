"""
Database setup and models for archiving scores and reminders
"""

from sqlalchemy import create_engine, Column, Integer, Float, String, DateTime, Boolean, Text
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from datetime import datetime
from typing import Optional

from config import DATABASE_URL
from models import PostureScore, ReminderEvent, ReminderResponse

# Create engine and session
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class PostureScoreDB(Base):
    """Database model for accepted posture scores"""
    __tablename__ = "posture_scores"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    session_id = Column(String, index=True)
    timestamp = Column(DateTime, index=True)
    overall = Column(Float)
    tilt_score = Column(Float)
    distance_score = Column(Float)
    position_score = Column(Float)
    level = Column(String)  # 'excellent', 'good', 'fair', 'poor', 'critical'
    created_at = Column(DateTime, default=datetime.utcnow)


class ReminderEventDB(Base):
    """Database model for issued reminders"""
    __tablename__ = "reminder_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    session_id = Column(String, index=True)
    timestamp = Column(DateTime, index=True)
    level = Column(String)
    reminder_type = Column(String)
    message = Column(Text)
    score = Column(Float)
    is_user_triggered = Column(Boolean, default=False)
    # Filled in once the reminder is resolved
    acknowledged = Column(Boolean, nullable=True)
    ignored = Column(Boolean, nullable=True)
    user_action = Column(String, nullable=True)
    response_time = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


def init_db(bind=engine):
    """Initialize the database - create all tables"""
    Base.metadata.create_all(bind=bind)
    print("Database initialized successfully!")


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def save_score(db: Session, session_id: str, score: PostureScore) -> PostureScoreDB:
    row = PostureScoreDB(
        session_id=session_id,
        timestamp=score.timestamp,
        overall=score.overall,
        tilt_score=score.tilt_score,
        distance_score=score.distance_score,
        position_score=score.position_score,
        level=score.level.value
    )
    db.add(row)
    db.commit()
    return row


def save_reminder_event(db: Session, session_id: str, event: ReminderEvent) -> ReminderEventDB:
    row = ReminderEventDB(
        session_id=session_id,
        timestamp=event.created_at,
        level=event.level.value,
        reminder_type=event.type.value,
        message=event.message,
        score=event.posture_score.overall,
        is_user_triggered=event.is_user_triggered
    )
    db.add(row)
    db.commit()
    return row


def mark_reminder_response(db: Session, session_id: str, event: ReminderEvent,
                           response: ReminderResponse) -> Optional[ReminderEventDB]:
    """Record how an archived reminder was resolved"""
    row = db.query(ReminderEventDB).filter(
        ReminderEventDB.session_id == session_id,
        ReminderEventDB.timestamp == event.created_at
    ).order_by(ReminderEventDB.id.desc()).first()

    if row is None:
        return None

    row.acknowledged = response.acknowledged
    row.ignored = response.ignored
    row.user_action = response.user_action.value if response.user_action else None
    row.response_time = response.response_time
    db.commit()
    return row


if __name__ == "__main__":
    # Run this file directly to initialize the database
    init_db()
