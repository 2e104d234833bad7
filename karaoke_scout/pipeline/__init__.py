"""Pipeline orchestration components for a karaoke-scout extraction run."""

from karaoke_scout.pipeline.dispatcher import TaskDispatcher
from karaoke_scout.pipeline.orchestrator import ShowExtractionPipeline
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.pipeline.session_registry import SessionRegistry

__all__ = [
    "ProgressTracker",
    "SessionRegistry",
    "ShowExtractionPipeline",
    "TaskDispatcher",
]
