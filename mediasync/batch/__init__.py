"""
Batch subpackage -- run the per-asset pipeline over a directory of videos.

    BatchOrchestrator  -- discovery, scheduling, failure isolation
    reporting          -- results.json / batch_summary documents
"""

from mediasync.batch.orchestrator import BackendPool, BatchOrchestrator, asset_directory_names
from mediasync.batch.results import BatchReport, OutcomeAccumulator, VideoOutcome
