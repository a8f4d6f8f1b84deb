from .simulator import InterviewSimulator, extract_candidate_name, extract_position


__all__ = [
    'InterviewSimulator',
    'extract_candidate_name',
    'extract_position',
]
