from .json_store import COLLECTIONS, JsonFileStore, KeyValueStore
from .transcript_parser import (
    TurnParser,
    SpeakerLabelParser,
    TimestampedSpeakerParser,
    TranscriptParserRegistry,
)
from .file_manager import FileManager, clean_transcript, parse_file_name, validate_content
from .selector import InteractiveSelector


__all__ = [
    # json_store.py
    'COLLECTIONS',
    'JsonFileStore',
    'KeyValueStore',

    # transcript_parser.py
    'TurnParser',
    'SpeakerLabelParser',
    'TimestampedSpeakerParser',
    'TranscriptParserRegistry',

    # file_manager.py / selector.py
    'FileManager',
    'clean_transcript',
    'parse_file_name',
    'validate_content',
    'InteractiveSelector',
]
