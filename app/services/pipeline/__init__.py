"""
Agent pipeline package.

Provides the analyzer, correlator and generator agents and the pipeline
that runs them stage by stage over a processing session.
"""

from .agent_pipeline import AgentPipeline
from .analyzer import ActivityAnalyzer
from .base import AgentOutput, InvalidArtifactError
from .correlator import ActivityCorrelator
from .generator import EntryGenerator

__all__ = [
    "ActivityAnalyzer",
    "ActivityCorrelator",
    "AgentOutput",
    "AgentPipeline",
    "EntryGenerator",
    "InvalidArtifactError",
]
