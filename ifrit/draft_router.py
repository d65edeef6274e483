"""
Draft Router — Ifrit Content Factory

Reads markdown drafts (YAML-style frontmatter + body), recommends which
website category an article belongs in, scans a drafts folder for pending
imports and keeps a per-site import history.

Drafts come in two shapes:

    drafts/
        my-post.md                  loose markdown file
        big-guide/                  folder-per-article
            article.md              (or the first *.md in the folder)
            cover/hero.jpg          optional cover image
            images/step-1.png       optional content images

Frontmatter is a small ``key: value`` subset, not full YAML: scalar keys
plus ``tags`` as an inline list (``[a, b]``) or a block list (``- a``).

Usage:
    from ifrit.draft_router import parse_markdown, detect_routing

    article = parse_markdown(open("post.md").read())
    rec = detect_routing(article, ["reviews", "how-to", "news"])
    print(rec.suggested_category, rec.confidence)

CLI:
    python -m ifrit.draft_router scan --dir websites/example.com/drafts
    python -m ifrit.draft_router route --file post.md --categories reviews,how-to,news
    python -m ifrit.draft_router history --domain example.com
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("draft_router")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.getenv("IFRIT_DATA_DIR", "data"))

MAX_HISTORY = 100
RECENT_HISTORY = 20
DESCRIPTION_CHARS = 160
DEFAULT_CATEGORY = "general"

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}

# Scoring weights
SCORE_EXACT = 10
SCORE_PARTIAL = 5
SCORE_TITLE_KEYWORD = 3
SCORE_TAG_KEYWORD = 2
MAX_ALTERNATIVES = 3

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "how-to": ["how to", "guide", "tutorial", "step-by-step", "learn", "beginner"],
    "reviews": ["review", "best", "top", "comparison", "vs", "versus", "rating"],
    "guides": ["guide", "complete", "ultimate", "comprehensive", "definitive"],
    "tutorials": ["tutorial", "how to", "learn", "course", "training"],
    "news": ["news", "update", "announcement", "release", "launch"],
    "tips": ["tips", "tricks", "hacks", "advice", "secrets"],
    "listicles": ["best", "top", "things", "ways", "reasons", "list"],
    "comparisons": ["vs", "versus", "comparison", "compare", "alternative"],
}

_STRICT_FRONTMATTER = re.compile(r"^---\n(.*?)\n---", re.DOTALL)
_LENIENT_FRONTMATTER = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)
_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_BLOCK_TAGS = re.compile(r"^tags:[ \t]*\n((?:[ \t]+-[ \t]+.+\n?)+)", re.MULTILINE)
_INLINE_TAGS = re.compile(r"^tags:[ \t]*\[(.*?)\]", re.MULTILINE)


class FrontmatterError(ValueError):
    """Raised when a markdown document has no leading ``---`` frontmatter block."""


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ImportStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"

    @classmethod
    def from_string(cls, value: str) -> ImportStatus:
        value_lower = value.strip().lower()
        for member in cls:
            if member.value == value_lower:
                return member
        raise ValueError(f"Unknown import status: {value!r}")


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------

@dataclass
class ParsedArticle:
    title: str = ""
    date: str = ""
    description: str = ""
    author: str = ""
    category: str = ""
    tags: list[str] = field(default_factory=list)
    template: str = ""
    content: str = ""
    word_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoutingRecommendation:
    suggested_category: str
    confidence: Confidence
    reason: str
    alternatives: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["confidence"] = self.confidence.value
        return d


@dataclass
class PendingDraft:
    filename: str
    title: str
    description: str = ""
    category: str = DEFAULT_CATEGORY
    tags: list[str] = field(default_factory=list)
    word_count: int = 0
    created_at: int = 0            # epoch ms (mtime)
    is_folder: bool = False
    has_cover: bool = False
    content_image_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ImportRecord:
    filename: str
    status: ImportStatus
    error: Optional[str] = None
    article_id: Optional[str] = None
    imported_at: int = 0           # epoch ms
    retry_count: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.status, str) and not isinstance(self.status, ImportStatus):
            self.status = ImportStatus.from_string(self.status)
        if not self.imported_at:
            self.imported_at = int(time.time() * 1000)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> ImportRecord:
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


# ---------------------------------------------------------------------------
# Frontmatter parsing
# ---------------------------------------------------------------------------

def _normalize(content: str) -> str:
    return content.replace("\r\n", "\n")


def _frontmatter_value(frontmatter: str, key: str) -> str:
    match = re.search(
        rf"^{re.escape(key)}:[ \t]*[\"']?(.+?)[\"']?[ \t]*$", frontmatter, re.MULTILINE,
    )
    return match.group(1).strip() if match else ""


def _frontmatter_tags(frontmatter: str) -> list[str]:
    block = _BLOCK_TAGS.search(frontmatter)
    if block:
        tags = [re.sub(r"^[ \t]+-[ \t]+", "", line).strip().strip("\"'")
                for line in block.group(1).split("\n")]
        return [t for t in tags if t]

    inline = _INLINE_TAGS.search(frontmatter)
    if inline:
        tags = [t.strip().replace('"', "").replace("'", "") for t in inline.group(1).split(",")]
        return [t for t in tags if t]
    return []


def _word_count(body: str) -> int:
    return len(body.split())


def _article_from_frontmatter(frontmatter: str, body: str) -> ParsedArticle:
    return ParsedArticle(
        title=_frontmatter_value(frontmatter, "title"),
        date=_frontmatter_value(frontmatter, "date") or date.today().isoformat(),
        description=_frontmatter_value(frontmatter, "description"),
        author=_frontmatter_value(frontmatter, "author"),
        category=_frontmatter_value(frontmatter, "category"),
        tags=_frontmatter_tags(frontmatter),
        template=_frontmatter_value(frontmatter, "template"),
        content=body,
        word_count=_word_count(body),
    )


def parse_markdown(content: str) -> ParsedArticle:
    """
    Parse a markdown article that must start with a ``---`` frontmatter block.

    Raises:
        FrontmatterError: when the document has no leading frontmatter.
    """
    content = _normalize(content)
    match = _STRICT_FRONTMATTER.match(content)
    if not match:
        raise FrontmatterError(
            "Invalid markdown: missing frontmatter (---). "
            "Add YAML frontmatter at the start."
        )
    body = content[match.end():].strip()
    return _article_from_frontmatter(match.group(1), body)


def parse_draft_file(content: str) -> ParsedArticle:
    """
    Lenient parse used for drafts-folder scans. Never raises.

    Without frontmatter the title comes from the first ``# `` heading and the
    description from the opening characters of the document.
    """
    content = _normalize(content)
    match = _LENIENT_FRONTMATTER.match(content)
    if not match:
        heading = _HEADING.search(content)
        return ParsedArticle(
            title=heading.group(1).strip() if heading else "Untitled",
            date=date.today().isoformat(),
            description=content[:DESCRIPTION_CHARS],
            category=DEFAULT_CATEGORY,
            content=content,
            word_count=_word_count(content),
        )

    frontmatter, raw_body = match.group(1), match.group(2)
    article = _article_from_frontmatter(frontmatter, raw_body.strip())
    article.title = article.title or "Untitled"
    article.description = article.description or raw_body[:DESCRIPTION_CHARS]
    article.category = article.category or DEFAULT_CATEGORY
    return article


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

def _score_category(article: ParsedArticle, category: str) -> int:
    title = article.title.lower()
    article_cat = article.category.lower()
    tags = [t.lower() for t in article.tags]
    web_cat = category.lower()

    score = 0
    if article_cat == web_cat:
        score += SCORE_EXACT
    # An empty category would contain (and be contained by) everything
    if article_cat and web_cat and (article_cat in web_cat or web_cat in article_cat):
        score += SCORE_PARTIAL

    for keyword in CATEGORY_KEYWORDS.get(web_cat, [web_cat]):
        if keyword in title:
            score += SCORE_TITLE_KEYWORD
        if any(keyword in t for t in tags):
            score += SCORE_TAG_KEYWORD
    return score


def detect_routing(article: ParsedArticle, website_categories: list[str]) -> RoutingRecommendation:
    """Recommend the website category that best fits *article*."""
    best_match = ""
    highest = 0
    alternatives: list[str] = []

    for category in website_categories:
        score = _score_category(article, category)
        logger.debug("Routing score %s -> %s: %d", article.title, category, score)
        if score <= 0:
            continue
        if score > highest:
            if best_match:
                alternatives.append(best_match)
            highest = score
            best_match = category
        else:
            alternatives.append(category)

    if highest >= SCORE_EXACT:
        confidence, reason = Confidence.HIGH, "Exact category match in frontmatter"
    elif highest >= SCORE_PARTIAL:
        confidence, reason = Confidence.MEDIUM, "Partial match based on title and tags"
    elif highest > 0:
        confidence, reason = Confidence.LOW, "Weak keyword match"
    else:
        confidence, reason = Confidence.LOW, "No strong category match found"

    if not best_match and website_categories:
        best_match = website_categories[0]
        reason = "No match found, using default category"

    return RoutingRecommendation(
        suggested_category=best_match,
        confidence=confidence,
        reason=reason,
        alternatives=alternatives[:MAX_ALTERNATIVES],
    )


# ---------------------------------------------------------------------------
# Drafts folder scanning
# ---------------------------------------------------------------------------

def _is_image(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def _count_images(directory: Path) -> int:
    if not directory.is_dir():
        return 0
    return sum(1 for p in directory.iterdir() if _is_image(p))


def find_article_file(folder: Path) -> Optional[Path]:
    """``article.md`` if present, else the first ``*.md`` by name, else None."""
    preferred = folder / "article.md"
    if preferred.is_file():
        return preferred
    candidates = sorted(p for p in folder.iterdir() if p.suffix == ".md" and p.is_file())
    return candidates[0] if candidates else None


def _draft_from_file(name: str, md_path: Path, mtime_ms: int, **folder_info: Any) -> PendingDraft:
    try:
        article = parse_draft_file(md_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read draft %s: %s", md_path, exc)
        return PendingDraft(
            filename=name,
            title=name if folder_info.get("is_folder") else name.replace(".md", ""),
            created_at=mtime_ms,
            is_folder=folder_info.get("is_folder", False),
            error=f"Read error: {exc}",
        )
    return PendingDraft(
        filename=name,
        title=article.title,
        description=article.description,
        category=article.category,
        tags=article.tags,
        word_count=article.word_count,
        created_at=mtime_ms,
        **folder_info,
    )


def _scan_entry(entry: Path, is_folder: bool) -> Optional[PendingDraft]:
    mtime_ms = int(entry.stat().st_mtime * 1000)
    if not is_folder:
        return _draft_from_file(entry.name, entry, mtime_ms)

    md_file = find_article_file(entry)
    if md_file is None:
        return None
    return _draft_from_file(
        entry.name, md_file, mtime_ms,
        is_folder=True,
        has_cover=_count_images(entry / "cover") > 0,
        content_image_count=_count_images(entry / "images"),
    )


def scan_drafts_folder(path: str | Path) -> list[PendingDraft]:
    """
    List pending drafts in *path*: loose ``.md`` files and article folders.

    Folders without any markdown file are skipped. Unreadable files, folders
    and dangling links are reported with ``error`` set rather than aborting
    the scan. A missing folder yields an empty list.
    """
    drafts_dir = Path(path)
    if not drafts_dir.is_dir():
        logger.info("Drafts folder %s does not exist", drafts_dir)
        return []

    pending: list[PendingDraft] = []
    for entry in sorted(drafts_dir.iterdir()):
        is_folder = entry.is_dir()
        if not is_folder and entry.suffix != ".md":
            continue
        try:
            draft = _scan_entry(entry, is_folder)
        except OSError as exc:
            logger.warning("Could not scan draft %s: %s", entry, exc)
            draft = PendingDraft(
                filename=entry.name,
                title=entry.name if is_folder else entry.name.replace(".md", ""),
                is_folder=is_folder,
                error=f"Read error: {exc}",
            )
        if draft is not None:
            pending.append(draft)

    logger.info("Scanned %s: %d pending drafts", drafts_dir, len(pending))
    return pending


# ---------------------------------------------------------------------------
# Import history
# ---------------------------------------------------------------------------

def _load_json(path: Path, default: Any = None) -> Any:
    """Load JSON from *path*, returning *default* when the file is missing or corrupt."""
    if default is None:
        default = {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def _save_json(path: Path, data: Any) -> None:
    """Atomically write *data* as pretty-printed JSON to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str)
    tmp.replace(path)


def history_path_for(domain: str) -> Path:
    return DATA_DIR / "websites" / domain / "import-history.json"


class ImportHistory:
    """Newest-first import log stored as a JSON list, capped at MAX_HISTORY."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> list[ImportRecord]:
        raw = _load_json(self.path, default=[])
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed import history at %s", self.path)
            return []
        records: list[ImportRecord] = []
        for item in raw:
            try:
                records.append(ImportRecord.from_dict(item))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping bad history record %s: %s", item, exc)
        return records

    def add(self, record: ImportRecord) -> None:
        records = [record] + self.load()
        _save_json(self.path, [r.to_dict() for r in records[:MAX_HISTORY]])

    def recent(self, limit: int = RECENT_HISTORY) -> list[ImportRecord]:
        return self.load()[:limit]


# ===================================================================
# CLI Entry Point
# ===================================================================


def _split_categories(value: str) -> list[str]:
    return [c.strip() for c in value.split(",") if c.strip()]


def main() -> None:
    """CLI entry point: python -m ifrit.draft_router <command> [options]."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="draft_router",
        description="Ifrit Draft Router — scan drafts and recommend categories",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_scan = subparsers.add_parser("scan", help="List pending drafts in a folder")
    p_scan.add_argument("--dir", required=True, help="Drafts folder")
    p_scan.add_argument("--json", action="store_true", help="Output as JSON")

    p_route = subparsers.add_parser("route", help="Recommend a category for a draft")
    p_route.add_argument("--file", required=True, help="Markdown file with frontmatter")
    p_route.add_argument("--categories", required=True,
                         help="Comma-separated website categories")

    p_hist = subparsers.add_parser("history", help="Show recent imports for a site")
    p_hist.add_argument("--domain", required=True, help="Site domain")
    p_hist.add_argument("--limit", type=int, default=RECENT_HISTORY)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command == "scan":
        drafts = scan_drafts_folder(args.dir)
        if args.json:
            print(json.dumps([d.to_dict() for d in drafts], indent=2))
            return
        print(f"PENDING DRAFTS ({len(drafts)})")
        print(f"{'=' * 50}")
        for d in drafts:
            kind = "folder" if d.is_folder else "file"
            extra = f"  ERROR: {d.error}" if d.error else ""
            print(f"  [{kind:<6}] {d.filename:<30} {d.word_count:>6} words"
                  f"  {d.category}{extra}")

    elif args.command == "route":
        try:
            article = parse_markdown(Path(args.file).read_text(encoding="utf-8"))
        except (OSError, FrontmatterError) as exc:
            print(f"Cannot route {args.file}: {exc}")
            sys.exit(1)
        rec = detect_routing(article, _split_categories(args.categories))
        print(f"Title:       {article.title}")
        print(f"Suggested:   {rec.suggested_category} ({rec.confidence.value})")
        print(f"Reason:      {rec.reason}")
        if rec.alternatives:
            print(f"Alternatives: {', '.join(rec.alternatives)}")

    elif args.command == "history":
        records = ImportHistory(history_path_for(args.domain)).recent(args.limit)
        if not records:
            print(f"No import history for {args.domain}")
            return
        for r in records:
            detail = r.article_id or r.error or ""
            print(f"  {r.status.value:<8} {r.filename:<30} {detail}")


if __name__ == "__main__":
    main()
