# Services module - reconciliation and external API integrations
from .reconcile import JobDiff, ReconciliationEngine
from .publisher import CheckPublisher, PublishResult
from .processor import BuildProcessor

__all__ = ["BuildProcessor", "CheckPublisher", "JobDiff", "PublishResult", "ReconciliationEngine"]
