"""
Credit accounting for recording processing.
One credit per started minute; a recording is charged at most once, keyed by
its id in the ledger.
"""

import logging
import math
import os

from recscribe.core.constants import (
    ErrorCode, CreditTransactionType, SECONDS_PER_CREDIT, MIN_CREDITS_PER_RECORDING,
)
from recscribe.core.error_codes import JobError, InsufficientCreditsError
from recscribe.core.models import Job

logger = logging.getLogger(__name__)


def credits_needed(duration_sec: float) -> int:
    """1 credit = 1 minute, rounded up, minimum 1."""
    return max(MIN_CREDITS_PER_RECORDING, math.ceil(duration_sec / SECONDS_PER_CREDIT))


def usage_description(file_name: str, duration_sec: float) -> str:
    stem, _ = os.path.splitext(file_name)
    return f"Audio analysis: {stem or file_name} ({round(duration_sec)}s)"


class CreditGate:
    """Check-then-charge-once in front of transcription."""

    def __init__(self, ledger):
        self.ledger = ledger

    def ensure_charged(self, job: Job, duration_sec: float) -> int:
        """
        Charge the job's recording unless a usage charge already exists.
        Returns the credits charged by this call (0 on an idempotent retry).
        Raises InsufficientCreditsError when the balance cannot cover it.
        """
        needed = credits_needed(duration_sec)

        # Queried every attempt: a crash after charging must still be seen
        if self.ledger.find_usage_charge(job.recording_id):
            logger.info("Recording %s already charged, skipping credit deduction", job.recording_id)
            return 0

        if not self.ledger.has_enough_credits(job.user_id, job.org_id, needed):
            available = self.ledger.effective_balance(job.user_id, job.org_id)
            raise InsufficientCreditsError(needed, available)

        self.ledger.charge_usage(
            job.user_id, job.org_id, needed,
            usage_description(job.file_name, duration_sec),
            job.recording_id,
        )
        logger.info("Charged %d credit(s) for recording %s", needed, job.recording_id)
        return needed


class SqliteCreditLedger:
    """Credit ledger over the credit_balances / credit_transactions tables."""

    def __init__(self, db):
        self.db = db

    def _balance(self, user_id: str, org_id: str) -> float:
        balance = self.db.get_balance(user_id, org_id)
        if balance is None:
            raise JobError(ErrorCode.ACCOUNT_NOT_FOUND,
                           f"No credit account for user {user_id} in organization {org_id}")
        return balance

    def effective_balance(self, user_id: str, org_id: str) -> float:
        return self._balance(user_id, org_id)

    def has_enough_credits(self, user_id: str, org_id: str, amount: float) -> bool:
        return self._balance(user_id, org_id) >= amount

    def charge_usage(self, user_id: str, org_id: str, amount: float,
                     description: str, recording_id: str):
        self._balance(user_id, org_id)
        self.db.deduct_credits(user_id, org_id, amount, description, recording_id)

    def find_usage_charge(self, recording_id: str) -> bool:
        return self.db.has_transaction(recording_id, CreditTransactionType.USAGE)
