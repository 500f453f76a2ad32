"""Bulk pricing jobs: store, state machine, processor and submission."""

from pricebook.jobs.errors import (
    JobNotFound,
    PricingJobError,
    PricingModeNotFound,
    ResetToBaselineFailed,
    StoreUnavailable,
)
from pricebook.jobs.processor import BatchPricingProcessor, OutcomeKind, ProcessOutcome
from pricebook.jobs.service import submit_pricing_job
from pricebook.jobs.store import JobStore

__all__ = [
    "BatchPricingProcessor",
    "JobNotFound",
    "JobStore",
    "OutcomeKind",
    "PricingJobError",
    "PricingModeNotFound",
    "ProcessOutcome",
    "ResetToBaselineFailed",
    "StoreUnavailable",
    "submit_pricing_job",
]
