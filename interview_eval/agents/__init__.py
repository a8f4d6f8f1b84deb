from .base import AgentRole, Agent, BaseAgent, ChatBackend
from .evaluator import EvaluatorAgent, format_transcript
from .interviewer import InterviewerAgent, END_SIGNAL
from .candidate import CandidateAgent


__all__ = [
    'AgentRole',
    'Agent',
    'BaseAgent',
    'ChatBackend',
    'EvaluatorAgent',
    'format_transcript',
    'InterviewerAgent',
    'END_SIGNAL',
    'CandidateAgent',
]
