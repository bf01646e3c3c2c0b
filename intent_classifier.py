# intent_classifier.py

import logging
import re
from typing import List, Optional, Pattern

from config_manager import ConfigManager
from models import Intent

logger = logging.getLogger(__name__)

TICKET_REFERENCE = re.compile(r"#(\d+)")
# A question word followed by one of these asks how something is done ("how do I close #7?").
PROCEDURE_AUXILIARIES = frozenset({"do", "does", "did", "can", "could", "should", "would", "to"})


def compile_cue(cue: str) -> Pattern:
    """
    Turns a configured cue into a word-bounded regex.
    A '*' in the cue matches any run of characters, so 'mark * as' matches
    'mark ticket #9 as closed'.
    """
    parts = [re.escape(part.strip()) for part in cue.split('*')]
    return re.compile(r"\b" + r"\b.*\b".join(parts) + r"\b", re.IGNORECASE)


def extract_ticket_number(message: str) -> Optional[int]:
    """Returns the first '#<digits>' reference in the message, if any."""
    match = TICKET_REFERENCE.search(message)
    return int(match.group(1)) if match else None


class IntentClassifier:
    """
    Decides, from keyword and regex cues alone, whether a message references a
    ticket, needs a search, and/or asks for a ticket change.
    Cues come from the [Intent] section of config.ini.
    """
    def __init__(self, config: ConfigManager):
        self.config = config
        self._search_patterns: List[Pattern] = [compile_cue(kw) for kw in config.search_keywords]
        self._action_patterns: List[Pattern] = [compile_cue(cue) for cue in config.action_cues]
        self._question_words = set(config.question_words)
        logger.debug("IntentClassifier initialized.")
        logger.debug(f"Search keywords loaded: {config.search_keywords}")
        logger.debug(f"Action cues loaded: {config.action_cues}")

    def classify(self, message: str) -> Intent:
        """
        Classifies a single operator message. Pure: the same message always
        yields the same Intent, and several flags may be set at once
        (e.g. "close #123 and tell me about similar tickets").

        Args:
            message: Free text typed by the operator.

        Returns:
            An Intent with the target ticket number (first '#<digits>' wins)
            and the search/action flags.
        """
        target_number = extract_ticket_number(message)
        text = message.strip()

        needs_search = self._looks_like_question(text) or any(p.search(text) for p in self._search_patterns)
        needs_action = any(p.search(text) for p in self._action_patterns) and not self._asks_how_to(text)

        intent = Intent(
            has_target_record=target_number is not None,
            target_number=target_number,
            needs_search=needs_search,
            needs_action=needs_action,
        )
        logger.info(
            f"Classified message: target={intent.target_number}, "
            f"needs_search={intent.needs_search}, needs_action={intent.needs_action}"
        )
        return intent

    async def aclassify(self, message: str) -> Intent:
        return self.classify(message)

    def _asks_how_to(self, text: str) -> bool:
        words = [w.strip(",.!?:;") for w in text.lower().split()[:2]]
        return len(words) == 2 and words[0] in self._question_words and words[1] in PROCEDURE_AUXILIARIES

    def _looks_like_question(self, text: str) -> bool:
        if "?" in text:
            return True
        words = text.lower().split()
        return bool(words) and words[0].strip(",.!:;") in self._question_words
