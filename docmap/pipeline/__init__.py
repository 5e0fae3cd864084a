"""Job execution components: the job queue, the per-document pipeline and progress tracking."""

from docmap.pipeline.document_pipeline import DocumentPipeline, PipelineResult
from docmap.pipeline.job_queue import JobQueue
from docmap.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "DocumentPipeline",
    "JobQueue",
    "PipelineResult",
    "ProgressTracker",
]
