from .chat_client import ChatClient


__all__ = [
    'ChatClient',
]
