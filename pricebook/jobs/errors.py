"""Exceptions raised by the pricing job subsystem."""

from __future__ import annotations


class PricingJobError(Exception):
    """Base class for pricing job errors."""


class StoreUnavailable(PricingJobError):
    """Storage could not complete an operation; no partial write is assumed."""


class JobNotFound(PricingJobError):
    """No job exists for the given id."""

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class PricingModeNotFound(PricingJobError):
    """The job's pricing mode does not exist."""

    def __init__(self, mode_id):
        self.mode_id = mode_id
        super().__init__(f"Pricing mode not found: {mode_id}")


class ResetToBaselineFailed(PricingJobError):
    """Deleting overrides for a Reset to Baseline run failed."""
