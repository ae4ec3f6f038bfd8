"""Turn raw post markup into speakable text.

The stages run in a fixed order, each one relying on the shape the previous
one produced:

1. ``strip_markup``        - HTML to flat text, greentext to "Quote:" sentences.
2. ``resolve_references``  - ``>>123`` to "replying to post N".
3. ``simplify_urls``       - URLs to short spoken labels.
4. ``summarize``           - long posts to a three-sentence summary.

Extra filters (plain ``str -> str`` callables) run after the four stages.
The result is never empty: posts without readable text get a placeholder.
"""

from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Callable, Sequence
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from threadreader.models import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS, Post

logger = logging.getLogger(__name__)

# Post bodies are fragments, often a lone URL; bs4 would warn about those.
warnings.filterwarnings("ignore", category=MarkupResemblesLocatorWarning)

TextFilter = Callable[[str], str]

WHITESPACE = re.compile(r"\s+")
MARKERS = re.compile(r"\((?:OP|You)\)")
REFERENCE_PATTERN = re.compile(r">>(\d+)")
CROSS_BOARD_PATTERN = re.compile(r">>>/(\w+)/\d*")
URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r"[.!?]+")
URL_TRAILING_PUNCTUATION = ".,;:!?)]}'\""

COLLAPSED_LINKS_MARKER = "various links"
GENERIC_LINK_LABEL = "link"
SUMMARY_PREFIX = "Post summary:"
REPLY_TO_UNKNOWN = "replying to another post"
REPLY_TO_OTHER_BOARD = "replying to a post on another board"

# Host -> spoken label. Subdomains match their parent entry.
HOST_LABELS = {
    "x.com": "X post",
    "twitter.com": "Twitter post",
    "youtube.com": "YouTube video",
    "youtu.be": "YouTube video",
    "reddit.com": "Reddit post",
    "redd.it": "Reddit post",
    "instagram.com": "Instagram post",
    "tiktok.com": "TikTok video",
    "facebook.com": "Facebook post",
    "github.com": "GitHub link",
    "wikipedia.org": "Wikipedia article",
    "imgur.com": "Imgur image",
}


def strip_markup(html: str) -> str:
    """Flatten post markup into a single line of plain text."""
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for quote in soup.select("span.quote"):
        body = quote.get_text().lstrip(">").strip()
        quote.replace_with(f" Quote: {_terminate(body)} " if body else " ")

    text = MARKERS.sub("", soup.get_text())
    return WHITESPACE.sub(" ", text).strip()


def resolve_references(text: str, thread_posts: Sequence[Post]) -> str:
    """Replace reply tokens with spoken references into the current thread.

    References are gathered into a leading sentence so the listener hears who
    is being answered before the answer. Ids missing from *thread_posts* are
    not looked up elsewhere. Text without tokens is returned unchanged.
    """
    if ">>" not in text:
        return text

    positions = {post.id: index for index, post in enumerate(thread_posts)}
    replies: list[str] = []

    def _cross_board(match: re.Match) -> str:
        replies.append(REPLY_TO_OTHER_BOARD)
        return " "

    def _local(match: re.Match) -> str:
        index = positions.get(match.group(1))
        replies.append(REPLY_TO_UNKNOWN if index is None else f"replying to post {index + 1}")
        return " "

    body = CROSS_BOARD_PATTERN.sub(_cross_board, text)
    body = REFERENCE_PATTERN.sub(_local, body)
    if not replies:
        return text

    lead = ". ".join(_dedupe(replies)) + "."
    body = WHITESPACE.sub(" ", body).strip()
    return f"{lead} {body}" if body else lead


def simplify_urls(text: str) -> str:
    """Replace URLs with spoken labels, or collapse them when there are many."""
    urls = URL_PATTERN.findall(text)
    if not urls:
        return text

    if len(urls) > 2:
        remaining = WHITESPACE.sub(" ", URL_PATTERN.sub(" ", text)).strip()
        return f"{remaining} {COLLAPSED_LINKS_MARKER}" if remaining else COLLAPSED_LINKS_MARKER

    def _label(match: re.Match) -> str:
        url = match.group(0)
        trailing = ""
        while url and url[-1] in URL_TRAILING_PUNCTUATION:
            trailing = url[-1] + trailing
            url = url[:-1]
        return label_for_url(url) + trailing

    return URL_PATTERN.sub(_label, text)


def label_for_url(url: str) -> str:
    """Classify *url* by host, then by file extension, into a short label."""
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    for prefix in ("www.", "m.", "mobile."):
        if host.startswith(prefix):
            host = host[len(prefix) :]
            break

    for known, label in HOST_LABELS.items():
        if host == known or host.endswith("." + known):
            return label

    extension = parts.path.rsplit(".", 1)[-1].lower() if "." in parts.path else ""
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension in VIDEO_EXTENSIONS:
        return "video"
    return GENERIC_LINK_LABEL


def summarize(text: str, threshold: int = 500) -> str:
    """Reduce text longer than *threshold* to its first, middle and last sentence."""
    if len(text) <= threshold:
        return text

    sentences = [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]
    if len(sentences) <= 3:
        return text

    picked = [sentences[0], sentences[len(sentences) // 2], sentences[-1]]
    return f"{SUMMARY_PREFIX} {'. '.join(picked)}."


def placeholder_for(post: Post, is_first: bool = False) -> str:
    """Minimal sentence for a post with nothing readable in its body."""
    if post.attachment is None:
        return "Empty post."
    kind = post.attachment.kind
    if is_first:
        return f"Original post with {_article(kind)} {kind}."
    return f"Post with {_article(kind)} {kind}."


class TextNormalizer:
    """Runs the normalization stages for one post at a time."""

    def __init__(
        self,
        summary_threshold: int = 500,
        filters: Sequence[TextFilter] = (),
    ) -> None:
        self.summary_threshold = summary_threshold
        self.filters = list(filters)

    def normalize(self, post: Post, thread_posts: Sequence[Post]) -> str:
        """Return speakable, non-empty text for *post* within *thread_posts*."""
        text = strip_markup(post.raw_body)
        text = resolve_references(text, thread_posts)
        text = simplify_urls(text)
        text = summarize(text, self.summary_threshold)
        for text_filter in self.filters:
            text = text_filter(text)

        if not text.strip():
            is_first = bool(thread_posts) and thread_posts[0].id == post.id
            text = placeholder_for(post, is_first=is_first)
            logger.debug(f"Post {post.id} has no readable text, using placeholder")
        return text


def _terminate(sentence: str) -> str:
    return sentence if sentence[-1] in ".!?" else sentence + "."


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _article(word: str) -> str:
    return "an" if word[:1] in "aeiou" else "a"
