"""Periodic purge of expired direct messages."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from teake.domain.chat.repo import MessageRepository
from teake.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

JOB_NAME = "purge_expired_messages"


async def purge_expired_messages(repo: Optional[MessageRepository] = None) -> Dict[str, int]:
	"""Delete every message whose expiry has passed.

	Safe to run repeatedly or concurrently: a second run over the same state
	removes nothing.
	"""
	repo = repo or MessageRepository()
	started = time.perf_counter()
	try:
		removed = await repo.cleanup_expired_messages()
	except Exception:
		obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
		raise
	obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=time.perf_counter() - started)
	obs_metrics.inc_messages_purged(removed)
	logger.info("expired_messages_purged", extra={"count": removed})
	return {"messages": removed}
