from .service import HistoryManagementService, determine_status, calculate_duration


__all__ = [
    'HistoryManagementService',
    'determine_status',
    'calculate_duration',
]
