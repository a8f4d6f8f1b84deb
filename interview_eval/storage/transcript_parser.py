"""
Speaker-turn parsing for raw conversation files.

Transcripts arrive in different speaker-label conventions. Each convention is
handled by one ``TurnParser``; the registry picks the first parser whose
``detect`` accepts the content. New conventions are added by registering a
parser, not by extending an existing one.
"""

import re
from typing import List, Optional, Protocol

from loguru import logger

from interview_eval.schema import ConversationMessage, SpeakerRole

# "Name (00:01):", "Name【1:02:03】：" ... as produced by FileManager.clean_transcript
TIMESTAMP_HEADER = re.compile(
    r"^(?P<speaker>.*?)\s*[\(\[（【]\s*(?P<time>\d{1,2}:\d{2}(?::\d{2})?)\s*[\)\]）】][:：]\s*(?P<content>.*)$"
)

INTERVIEWER_NAMES = ("面试官", "interviewer")
CANDIDATE_NAMES = ("候选人", "candidate")


class TurnParser(Protocol):
    name: str

    def detect(self, content: str) -> bool: ...

    def parse(self, content: str) -> List[ConversationMessage]: ...


def _close_turn(messages: List[ConversationMessage], role: Optional[str], lines: List[str]) -> None:
    text = "\n".join(lines).strip()
    if role and text:
        messages.append(ConversationMessage(role=role, content=text, turn=len(messages) + 1))


class SpeakerLabelParser:
    """Lines starting with ``面试官:`` / ``Interviewer:`` or ``候选人:`` / ``Candidate:`` start a new turn."""

    name = "speaker_label"

    markers = {
        "面试官:": SpeakerRole.INTERVIEWER,
        "Interviewer:": SpeakerRole.INTERVIEWER,
        "候选人:": SpeakerRole.CANDIDATE,
        "Candidate:": SpeakerRole.CANDIDATE,
    }

    def _match(self, line: str):
        stripped = line.lstrip()
        for marker, role in self.markers.items():
            if stripped.startswith(marker):
                return role, stripped[len(marker):]
        return None

    def detect(self, content: str) -> bool:
        return any(self._match(line) for line in content.splitlines())

    def parse(self, content: str) -> List[ConversationMessage]:
        messages: List[ConversationMessage] = []
        role: Optional[str] = None
        lines: List[str] = []

        for line in content.splitlines():
            match = self._match(line)
            if match:
                _close_turn(messages, role, lines)
                role, first_line = match[0].value, match[1]
                lines = [first_line]
            elif role:
                lines.append(line)

        _close_turn(messages, role, lines)
        return messages


class TimestampedSpeakerParser:
    """
    ``Speaker (mm:ss): text`` lines, one turn per line.

    Speakers named 面试官/Interviewer or 候选人/Candidate are mapped directly.
    Other names are assigned by order of appearance: the first speaker is the
    interviewer, everybody else is a candidate.
    """

    name = "timestamped_speaker"

    def detect(self, content: str) -> bool:
        return any(TIMESTAMP_HEADER.match(line.strip()) for line in content.splitlines())

    def _role_for(self, speaker: str, first_speaker: Optional[str]) -> SpeakerRole:
        lowered = speaker.lower()
        if any(name in lowered for name in INTERVIEWER_NAMES):
            return SpeakerRole.INTERVIEWER
        if any(name in lowered for name in CANDIDATE_NAMES):
            return SpeakerRole.CANDIDATE
        if first_speaker is None or speaker == first_speaker:
            return SpeakerRole.INTERVIEWER
        return SpeakerRole.CANDIDATE

    def parse(self, content: str) -> List[ConversationMessage]:
        messages: List[ConversationMessage] = []
        first_speaker: Optional[str] = None
        role: Optional[str] = None
        lines: List[str] = []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            match = TIMESTAMP_HEADER.match(line)
            if match:
                _close_turn(messages, role, lines)
                speaker = match.group("speaker").strip()
                role = self._role_for(speaker, first_speaker).value
                if first_speaker is None:
                    first_speaker = speaker
                lines = [match.group("content")]
            elif role:
                lines.append(line)

        _close_turn(messages, role, lines)
        return messages


class TranscriptParserRegistry:
    """Ordered collection of turn parsers; the first one that detects its format wins."""

    def __init__(self, parsers: Optional[List[TurnParser]] = None):
        if parsers is None:
            parsers = [SpeakerLabelParser(), TimestampedSpeakerParser()]
        self.parsers: List[TurnParser] = list(parsers)

    def register(self, parser: TurnParser, first: bool = False) -> None:
        if first:
            self.parsers.insert(0, parser)
        else:
            self.parsers.append(parser)

    def detect(self, content: str) -> Optional[TurnParser]:
        for parser in self.parsers:
            if parser.detect(content):
                return parser
        return None

    def parse(self, content: str) -> List[ConversationMessage]:
        """Split ``content`` into turns; an empty list means no registered format matched."""
        parser = self.detect(content)
        if parser is None:
            logger.debug("No transcript format detected")
            return []
        messages = parser.parse(content)
        logger.debug(f"Parsed {len(messages)} turns with '{parser.name}'")
        return messages
