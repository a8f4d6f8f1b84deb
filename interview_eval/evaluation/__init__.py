from .json_cleanup import ParsedJson, clean_json_response, parse_json_response
from .engine import EvaluationEngine, format_topics_for_evaluation
from .batch import BatchEvaluationService


__all__ = [
    'ParsedJson',
    'clean_json_response',
    'parse_json_response',
    'EvaluationEngine',
    'format_topics_for_evaluation',
    'BatchEvaluationService',
]
