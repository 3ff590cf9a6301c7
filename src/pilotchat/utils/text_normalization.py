"""Text normalization: spoken numbers to digits, metre quantities from commands."""
import re
import logging
from word2number import w2n

logger = logging.getLogger(__name__)

_NUMBER_WORDS = (
    r'zero|one|two|three|four|five|six|seven|eight|nine|ten|'
    r'eleven|twelve|thirteen|fourteen|fifteen|sixteen|seventeen|eighteen|nineteen|'
    r'twenty|thirty|forty|fifty|sixty|seventy|eighty|ninety|hundred|thousand'
)
_NUMBER_PHRASE = re.compile(
    r'\b(?P<number>(?:(?:' + _NUMBER_WORDS + r')(?:\s+|-|\b))+)',
    re.IGNORECASE,
)
_METERS_QUANTITY = re.compile(r'(\d+(?:\.\d+)?)\s*(?:meters|meter|m)\b', re.IGNORECASE)


def spoken_numbers_to_digits(text):
    """Replace runs of English number words with digits ("fifty five meters" -> "55 meters")."""
    if not text:
        return text

    def repl(match):
        phrase = match.group('number').replace('-', ' ').strip()
        try:
            num = w2n.word_to_num(phrase)
        except (ValueError, IndexError):
            logger.debug(f"word2number could not parse '{phrase}'")
            return match.group(0)
        trailing = ' ' if match.group(0)[-1:].isspace() else ''
        return f"{num}{trailing}"

    return _NUMBER_PHRASE.sub(repl, text)


def extract_meters(text, default=None):
    """
    Returns the first "<number> m|meter|meters" quantity in text.
    Whole numbers come back as int, anything else as float.
    """
    match = _METERS_QUANTITY.search(text or "")
    if not match:
        return default
    value = float(match.group(1))
    return int(value) if value.is_integer() else value
