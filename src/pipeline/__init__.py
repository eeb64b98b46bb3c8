"""Annotation pipeline components: chunking, retries, progress, aggregation."""

from src.pipeline.annotation_pipeline import AnnotationPipeline
from src.pipeline.chunk_scheduler import ChunkScheduler
from src.pipeline.progress_reporter import ProgressReporter
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.result_aggregator import ResultAggregator
from src.pipeline.retry_policy import RetryPolicy

__all__ = [
    "AnnotationPipeline",
    "ChunkScheduler",
    "ProgressReporter",
    "ProgressTracker",
    "ResultAggregator",
    "RetryPolicy",
]
