"""Ingestion pipeline: lifecycle FSM, pure reducer, effects and driver.

.. autoclass:: projsynth.pipeline.orchestrator.ProjectOrchestrator
.. autofunction:: projsynth.pipeline.reducer.transition
"""

from projsynth.pipeline.effects import Collaborators
from projsynth.pipeline.lifecycle import Lifecycle
from projsynth.pipeline.orchestrator import ProjectOrchestrator
from projsynth.pipeline.reducer import step, transition
from projsynth.pipeline.state import AnalysisPayload, PipelineContext, PipelineState

__all__ = [
    "AnalysisPayload",
    "Collaborators",
    "Lifecycle",
    "PipelineContext",
    "PipelineState",
    "ProjectOrchestrator",
    "step",
    "transition",
]
