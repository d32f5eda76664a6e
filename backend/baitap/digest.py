"""Weekly activity digests for the notification service.

``build_weekly_digests`` is the entry point an external scheduler calls once
a week (the HTTP service never does). It opens no session of its own: the
caller passes a ``Session`` (for example ``db.SessionLocal()``), the
learners to cover and a ``DigestSender`` that renders and delivers each
report.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from .activity import ActivityWindowReport, local_today, weekly_activity

logger = logging.getLogger(__name__)


@dataclass
class DigestRecipient:
	user_id: int
	username: str
	email: str
	display_name: Optional[str] = None


class DigestSender(Protocol):
	"""Renders and delivers one digest; owned by the notification service."""

	def send(self, recipient: DigestRecipient, report: ActivityWindowReport) -> None:
		...


def build_weekly_digests(
	db: Session,
	recipients: Iterable[DigestRecipient],
	sender: DigestSender,
	today: Optional[date] = None,
) -> Dict[str, int]:
	"""Hand last week's report of every active learner to ``sender``.

	Learners with no answered questions and no AI questions are skipped. A
	failure for one learner is counted and logged; the run continues.
	"""
	week_of = (today or local_today()) - timedelta(days=7)
	summary = {"success": 0, "failed": 0, "skipped": 0, "total": 0}
	for recipient in recipients:
		summary["total"] += 1
		try:
			report = weekly_activity(db, recipient.user_id, week_of)
			if report.is_empty:
				summary["skipped"] += 1
				continue
			sender.send(recipient, report)
		except Exception:
			logger.exception("weekly digest for %s failed", recipient.username)
			summary["failed"] += 1
			continue
		summary["success"] += 1
	logger.info("weekly digests: %s", summary)
	return summary
