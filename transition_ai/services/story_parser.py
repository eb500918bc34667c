"""
Forum Story Parser

Turns one raw forum-search response into ScrapedStory records. The search
model's output format has drifted across prompt revisions, so three
strategies are tried in order and the first one that yields at least one
accepted story wins:

  1. JsonArrayStrategy       - a JSON array of story objects anywhere in the text
  2. DelimitedBlockStrategy  - code-fence / horizontal-rule separated labelled blocks
  3. LegacySplitStrategy     - text split before every "Source:" label

A candidate is accepted only with a non-empty source, trimmed content longer
than the minimum length, and at least one of url/date. Rejected candidates are
dropped quietly; partial extraction is normal.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Union

from transition_ai.schemas.transition import NOT_PROVIDED, ScrapedStory
from transition_ai.services.date_normalizer import normalize_date
from transition_ai.utils.json_extract import JSONExtractionError, extract_json_array
from transition_ai.utils.logger import get_logger
from transition_ai.utils.metrics import inc

logger = get_logger("story_parser")

_PLACEHOLDERS = {"", "-", "n/a", "na", "none", "null", "unknown", "not provided", "not available"}

_LABEL_PREFIX = r"^[ \t]*(?:[-*•]|\d+[.)])?[ \t]*\**"
_LABEL_SUFFIX = r"\**[ \t]*:\**[ \t]*"


def _label(name: str, multiline_value: bool = False) -> re.Pattern:
    value = r"([\s\S]*)" if multiline_value else r"(.*)$"
    return re.compile(_LABEL_PREFIX + name + _LABEL_SUFFIX + value, re.IGNORECASE | re.MULTILINE)


SOURCE_LABEL = _label("Source")
URL_LABEL = _label("URL")
DATE_LABEL = _label("Date")
CONTENT_LABEL = _label("Content", multiline_value=True)
_METADATA_LINE = re.compile(_LABEL_PREFIX + r"(?:Source|URL|Date)" + _LABEL_SUFFIX, re.IGNORECASE)

_BLOCK_DELIMITER = re.compile(r"^[ \t]*(?:```[\w-]*|-{3,}|\*{3,})[ \t]*$", re.MULTILINE)
_LEGACY_SPLIT = re.compile(r"(?=Source:|SOURCE:)")
_URL = re.compile(r"https?://[^\s)>\]]+")
# "- " or "2." left dangling at the end of a block when the next label was split off
_DANGLING_BULLET = re.compile(r"(?:\n[ \t]*(?:[-*•]|\d+[.)])?[ \t]*)+\Z")


# ---------------------------------------------------------------------------
# Strategy results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Parsed:
    strategy: str
    records: List[ScrapedStory]
    rejected: int = 0


@dataclass(frozen=True)
class Unparsed:
    strategy: str
    reason: str


ParseResult = Union[Parsed, Unparsed]


def _clean_value(value: Optional[str]) -> str:
    if value is None:
        return ""
    value = value.strip().strip("*").strip()
    return "" if value.lower() in _PLACEHOLDERS else value


def _clean_url(value: Optional[str]) -> str:
    value = _clean_value(value)
    match = _URL.search(value)
    if match:
        return match.group(0).rstrip(".,;")
    return value


def extract_labelled_fields(block: str) -> Dict[str, str]:
    """
    Read Source/URL/Date/Content from one labelled block.

    Content is everything after the ``Content:`` label, or every line that is
    not a metadata label line when that label is missing.
    """
    fields = {}
    for name, pattern in (("source", SOURCE_LABEL), ("url", URL_LABEL), ("date", DATE_LABEL)):
        match = pattern.search(block)
        fields[name] = match.group(1) if match else ""

    content_match = CONTENT_LABEL.search(block)
    if content_match:
        fields["content"] = content_match.group(1).strip()
    else:
        lines = [
            line for line in block.splitlines()
            if line.strip() and not _METADATA_LINE.match(line)
        ]
        fields["content"] = "\n".join(lines).strip()
    fields["content"] = _DANGLING_BULLET.sub("", fields["content"]).strip()
    return fields


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class StoryStrategy:
    """Produces raw candidate dicts (source/content/url/date) from response text."""

    name = "base"

    def candidates(self, text: str) -> Union[List[Dict[str, str]], Unparsed]:
        raise NotImplementedError


class JsonArrayStrategy(StoryStrategy):
    name = "json_array"

    _ALIASES = {
        "source": ("source", "platform", "site"),
        "content": ("content", "text", "story", "body"),
        "url": ("url", "link", "permalink"),
        "date": ("date", "postDate", "post_date", "published"),
    }

    def candidates(self, text):
        try:
            data = extract_json_array(text)
        except JSONExtractionError as e:
            return Unparsed(self.name, str(e))
        if not isinstance(data, list):
            return Unparsed(self.name, f"decoded {type(data).__name__}, not a list")

        found = []
        for item in data:
            if not isinstance(item, dict):
                continue
            candidate = {}
            for field_name, keys in self._ALIASES.items():
                value = next((item[k] for k in keys if item.get(k) is not None), "")
                candidate[field_name] = value if isinstance(value, str) else str(value)
            found.append(candidate)
        return found


class DelimitedBlockStrategy(StoryStrategy):
    name = "delimited_blocks"

    def candidates(self, text):
        if not _BLOCK_DELIMITER.search(text):
            return Unparsed(self.name, "no block delimiters")

        found = []
        for block in _BLOCK_DELIMITER.split(text):
            sources = SOURCE_LABEL.findall(block)
            if len(sources) != 1:
                # zero: not a story; several: stories not separated, leave to legacy split
                continue
            if not (URL_LABEL.search(block) or DATE_LABEL.search(block)):
                continue
            found.append(extract_labelled_fields(block))
        return found


class LegacySplitStrategy(StoryStrategy):
    name = "legacy_split"

    def candidates(self, text):
        blocks = [b for b in _LEGACY_SPLIT.split(text) if b.strip()]
        if not blocks:
            return Unparsed(self.name, "empty response")
        return [extract_labelled_fields(block) for block in blocks]


DEFAULT_STRATEGIES = (JsonArrayStrategy(), DelimitedBlockStrategy(), LegacySplitStrategy())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

@dataclass
class ForumStoryParser:
    strategies: Sequence[StoryStrategy] = field(default_factory=lambda: DEFAULT_STRATEGIES)
    min_content_length: int = 50
    order_hint: Optional[str] = None
    clock: Callable[[], datetime] = datetime.now

    def accept(self, candidate: Dict[str, str]) -> Optional[ScrapedStory]:
        """Apply the noise filter; returns None for rejected candidates."""
        source = _clean_value(candidate.get("source"))
        content = (candidate.get("content") or "").strip()
        url = _clean_url(candidate.get("url"))
        raw_date = _clean_value(candidate.get("date"))

        if not source or len(content) <= self.min_content_length:
            return None
        if not url and not raw_date:
            return None

        return ScrapedStory(
            source=source,
            content=content,
            url=url or NOT_PROVIDED,
            date=normalize_date(raw_date, now=self.clock(), order_hint=self.order_hint) if raw_date else NOT_PROVIDED,
        )

    def run_strategy(self, strategy: StoryStrategy, text: str) -> ParseResult:
        outcome = strategy.candidates(text)
        if isinstance(outcome, Unparsed):
            return outcome

        records = []
        for candidate in outcome:
            story = self.accept(candidate)
            if story is not None:
                records.append(story)
        rejected = len(outcome) - len(records)

        if not records:
            return Unparsed(strategy.name, f"{len(outcome)} candidates, none accepted")
        return Parsed(strategy.name, records, rejected)

    def parse(self, raw_text: str) -> List[ScrapedStory]:
        if not raw_text or not raw_text.strip():
            return []

        for strategy in self.strategies:
            result = self.run_strategy(strategy, raw_text)
            if isinstance(result, Parsed):
                inc(f"story_parser.{result.strategy}.hit")
                logger.info(
                    "story_parser.parsed",
                    extra={"strategy": result.strategy, "records": len(result.records)},
                )
                if result.rejected:
                    logger.debug(f"story_parser dropped {result.rejected} candidates ({result.strategy})")
                return result.records
            logger.debug(f"story_parser {result.strategy} unparsed: {result.reason}")

        inc("story_parser.no_match")
        return []
