from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import TutorSessionRecord


def purge_older_than_one_week(db: Session) -> int:
	threshold = datetime.utcnow() - timedelta(days=7)
	res = db.execute(delete(TutorSessionRecord).where(TutorSessionRecord.updated_at < threshold))
	db.commit()
	return res.rowcount or 0
