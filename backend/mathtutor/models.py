from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Float, Text
from .db import Base


class TutorSessionRecord(Base):
	__tablename__ = "tutor_sessions"
	# One row per finished session
	id = Column(Integer, primary_key=True, autoincrement=True)
	session_id = Column(String(64), index=True, nullable=False)
	end_reason = Column(String(32), nullable=False)
	understanding_score = Column(Float, default=0.0, nullable=False)
	warning_count = Column(Integer, default=0, nullable=False)
	current_step = Column(Integer, default=1, nullable=False)
	message_count = Column(Integer, default=0, nullable=False)
	started_at = Column(DateTime, nullable=True)
	transcript_json = Column(Text, nullable=True)  # JSON list of {role, content}
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
