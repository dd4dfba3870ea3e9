"""
Question Rules

Ordered rule set used by the QuestionClassifier heuristics.

Two kinds of rule:
- regex: a match means "question", decided without any LLM call
- lexicon: a whole word that hints at a question; a hit routes the message
  to the short-context judge prompt

Rules can be loaded from a Markdown file (see patterns/question-rules.md):

    ## Regex
    - `can (you|someone|anybody)`

    ## Lexicon
    - `what`
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger("faqtriage.triage.rules")

RULE_KINDS = ("regex", "lexicon")


@dataclass(frozen=True)
class ClassifierRule:
    """A single heuristic rule"""
    kind: str  # "regex" or "lexicon"
    pattern: str
    compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.kind not in RULE_KINDS:
            raise ValueError(f"Unknown rule kind {self.kind!r}, expected one of {RULE_KINDS}")
        if self.kind == "regex":
            compiled = re.compile(self.pattern, re.IGNORECASE)
        else:
            compiled = re.compile(r"\b" + re.escape(self.pattern.lower()) + r"\b", re.IGNORECASE)
        object.__setattr__(self, "compiled", compiled)

    def matches(self, text: str) -> bool:
        return self.compiled.search(text) is not None


QUESTION_PATTERNS = [
    r"can (you|someone|anybody)",
    r"could (you|someone|anybody)",
    r"please help",
    r"need help",
    r"any idea",
    r"anyone know",
    r"wondering (if|how|what|why)",
    r"trying to",
    r"help me",
    r"explain",
]

QUESTION_WORDS = [
    "what", "how", "why", "when", "where", "who", "which", "whose", "whom",
    "is", "are", "can", "could", "should", "would", "will",
    "do", "does", "did",
    "anyone", "anybody", "help", "explain", "tell", "wonder",
]

DEFAULT_RULES: List[ClassifierRule] = (
    [ClassifierRule("regex", p) for p in QUESTION_PATTERNS]
    + [ClassifierRule("lexicon", w) for w in QUESTION_WORDS]
)


def _section_kind(header: str) -> Optional[str]:
    name = header.strip("# ").strip().lower()
    if name.startswith("regex") or name.startswith("pattern"):
        return "regex"
    if name.startswith("lexicon") or name.startswith("word"):
        return "lexicon"
    return None


def parse_rule_file(md_path: str) -> List[ClassifierRule]:
    """
    Parse a Markdown rule file into an ordered rule list.

    Entries are backticked list items under a "## Regex" or "## Lexicon"
    header. Items under any other header are ignored. Order is preserved and
    duplicates are dropped.

    Raises:
        FileNotFoundError: if the file does not exist
        ValueError: if a regex entry does not compile
    """
    path = Path(md_path)
    if not path.exists():
        raise FileNotFoundError(f"Rule file not found: {md_path}")

    rules: List[ClassifierRule] = []
    seen = set()
    current_kind: Optional[str] = None

    for line in path.read_text(encoding="utf-8").split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("<!--"):
            continue

        if stripped.startswith("#"):
            current_kind = _section_kind(stripped)
            continue

        if current_kind is None:
            continue

        entry = re.match(r"^[-*]\s*`([^`]+)`", stripped)
        if not entry:
            continue

        pattern = entry.group(1).strip()
        key = (current_kind, pattern.lower())
        if not pattern or key in seen:
            continue
        seen.add(key)

        try:
            rules.append(ClassifierRule(current_kind, pattern))
        except re.error as e:
            raise ValueError(f"Invalid regex rule {pattern!r} in {md_path}: {e}") from e

    return rules


def load_rules(rules_path: Optional[str] = None) -> List[ClassifierRule]:
    """Load rules from ``rules_path``, or the built-in set when none is given."""
    if not rules_path:
        return list(DEFAULT_RULES)

    rules = parse_rule_file(rules_path)
    if not rules:
        logger.warning("No rules found in %s, using built-in rules", rules_path)
        return list(DEFAULT_RULES)

    logger.info("Loaded %d classifier rules from %s", len(rules), rules_path)
    return rules
