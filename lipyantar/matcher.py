"""Page eligibility matching."""

from __future__ import annotations

import re
from typing import Dict, Optional

from .structures import LanguageInfo

READER_URL_PATTERN = re.compile(
    r"https://www\.lingq\.com/[^/]+/learn/(?P<code>[^/]+)/web/reader/"
)


class URLMatcher:
    """Recognises reader pages and the language they are in."""

    def __init__(self, supported_languages: Optional[Dict[str, str]] = None) -> None:
        self.supported_languages: Dict[str, str] = dict(
            supported_languages if supported_languages is not None else {"gu": "gujarati"}
        )

    def is_valid_url(self, url: str) -> Optional[LanguageInfo]:
        match = READER_URL_PATTERN.search(url or "")
        if match is None:
            return None
        code = match.group("code")
        language = self.supported_languages.get(code)
        if language is None:
            return None
        return LanguageInfo(language_code=code, language=language)

    def add_supported_language(self, code: str, name: str) -> None:
        self.supported_languages[code] = name
