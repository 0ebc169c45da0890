# tags.py
import re
from typing import Iterable, List, Optional, Union

# \w is Unicode-aware for str patterns
HASHTAG_RE = re.compile(r"#\w+")
SEPARATOR_RE = re.compile(r"[\s,;]+")


def _as_hashtag(token: str) -> str:
    return token if token.startswith("#") else f"#{token}"


def parse_tags(raw: Optional[Union[str, Iterable[str]]]) -> List[str]:
    """Turn free-form tag input into a list of hashtags.

    If the text contains hashtag-shaped tokens only those are kept, otherwise
    it is split on whitespace, commas and semicolons and every token gets a
    leading ``#``.
    """
    if raw is None:
        return []

    if not isinstance(raw, str):
        return [_as_hashtag(tag.strip()) for tag in raw if tag and tag.strip()]

    text = raw.strip()
    if not text:
        return []

    hashtags = HASHTAG_RE.findall(text)
    if hashtags:
        return hashtags

    return [_as_hashtag(token) for token in SEPARATOR_RE.split(text) if token]
