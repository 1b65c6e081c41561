import asyncio
import logging
from typing import Dict, List, Optional

from assessment.core.config import settings
from assessment.core.exceptions import AttemptAlreadyFinalized, FlushFailed
from assessment.services.attempt_store import AttemptStore
from assessment.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class AnswerBuffer:
    """Draft answers for one in-progress attempt, keyed by question id.

    Drafts are the source of truth until a flush persists them. A failed
    flush keeps every draft so the next flush can converge.
    """

    def __init__(self, attempt_id: int, store: AttemptStore, clock: Clock = utcnow,
                 max_retries: int = settings.FLUSH_MAX_RETRIES,
                 backoff_seconds: float = settings.FLUSH_BACKOFF_SECONDS):
        self.attempt_id = attempt_id
        self.store = store
        self.clock = clock
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._drafts: Dict[int, str] = {}
        self._persisted: Dict[int, str] = {}
        self._lock = asyncio.Lock()

    def load_persisted(self, answers: Dict[int, str]):
        """Seed the buffer with answers already in the store (resume)."""
        for question_id, value in answers.items():
            self._persisted[question_id] = value
            self._drafts.setdefault(question_id, value)

    def set(self, question_id: int, value: Optional[str]):
        self._drafts[question_id] = value or ""

    def get(self, question_id: int) -> str:
        return self._drafts.get(question_id, "")

    def drafts(self) -> Dict[int, str]:
        return {qid: value for qid, value in self._drafts.items() if value.strip()}

    def answered_count(self) -> int:
        return len(self.drafts())

    def pending(self) -> List[int]:
        pending = []
        for question_id, value in self._drafts.items():
            persisted = self._persisted.get(question_id)
            if persisted is None and not value.strip():
                # empty and never stored: nothing to write
                continue
            if persisted != value:
                pending.append(question_id)
        return sorted(pending)

    async def flush(self) -> int:
        """Persist changed drafts. Returns how many answers were written.

        Retries with exponential backoff; raises FlushFailed once retries are
        exhausted and AttemptAlreadyFinalized if the attempt stopped accepting
        answers.
        """
        async with self._lock:
            attempt = 0
            while True:
                try:
                    return await self._write_pending()
                except AttemptAlreadyFinalized:
                    raise
                except Exception as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.error(
                            f"Flush for attempt {self.attempt_id} failed after {attempt} tries, "
                            f"{len(self.pending())} drafts kept: {e}"
                        )
                        raise FlushFailed(
                            "Answers could not be saved yet; they are kept and will be retried.",
                            details={"attempt_id": self.attempt_id, "pending": self.pending()},
                        ) from e
                    delay = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(f"Flush retry {attempt} for attempt {self.attempt_id} in {delay}s: {e}")
                    await asyncio.sleep(delay)

    async def _write_pending(self) -> int:
        written = 0
        for question_id in self.pending():
            value = self._drafts[question_id]
            accepted = await self.store.upsert_answer(self.attempt_id, question_id, value, self.clock())
            if not accepted:
                raise AttemptAlreadyFinalized(
                    "Exam attempt is no longer in progress.",
                    details={"attempt_id": self.attempt_id},
                )
            self._persisted[question_id] = value
            written += 1
        return written
