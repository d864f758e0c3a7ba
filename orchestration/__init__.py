from .reasoning import ReasoningOrchestrator, build_snapshot_prompt, scrub_thought
from .pipeline import ProgressivePipeline
from .session import AnalysisSession, SessionState
from .prediction import generate_prediction

__all__ = [
    "ReasoningOrchestrator",
    "build_snapshot_prompt",
    "scrub_thought",
    "ProgressivePipeline",
    "AnalysisSession",
    "SessionState",
    "generate_prediction",
]
