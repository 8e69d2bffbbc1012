"""Base feed parser interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

MAX_DESCRIPTION_CHARS = 500


@dataclass(frozen=True)
class RawFeedItem:
    """One entry extracted from a feed document, before date parsing."""

    title: str
    link: str
    pub_date: str
    description: str


class BaseFeedParser(ABC):
    """Abstract base for feed parsers.

    Subclasses turn a raw RSS/Atom document into ``RawFeedItem`` records. They
    must not raise on malformed input: missing fields are empty strings and an
    unreadable document yields an empty list. Items with neither title nor link
    are dropped, descriptions are cut to ``MAX_DESCRIPTION_CHARS``.
    """

    @abstractmethod
    def parse(self, xml_text: str) -> List[RawFeedItem]:
        ...
