"""Stage agents invoked by the pipeline Manager."""

from app.agents.classifier import ClassifierAgent
from app.agents.noise_filter import NoiseFilterAgent, is_noise
from app.agents.relevance import RelevanceAgent, RelevanceScore, score_relevance
from app.agents.summarizer import SummarizerAgent

__all__ = [
    "ClassifierAgent",
    "NoiseFilterAgent",
    "RelevanceAgent",
    "RelevanceScore",
    "SummarizerAgent",
    "is_noise",
    "score_relevance",
]
