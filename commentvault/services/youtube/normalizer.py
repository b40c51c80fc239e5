"""Normalize raw continuation responses into canonical comment records.

A comment arrives in one of two incompatible payload shapes. Each payload is
classified once into a ``CommentShape`` and handed to that shape's extractor;
everything downstream only sees ``NormalizedComment``.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from commentvault.services.youtube.exceptions import UpstreamError
from commentvault.services.youtube.parsing import endpoint_token, first, search_dict

HEARTED_STATE = "TOOLBAR_HEART_STATE_HEARTED"
REPLY_SEPARATOR = "."
REPLY_TARGET_PREFIX = "comment-replies-item"

_COMPACT_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*([KMB])\b")
_MULTIPLIERS = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}


class CommentShape(str, Enum):
    """Payload shapes a comment can arrive in, named by their response key."""

    VIEW_MODEL = "commentViewModel"
    ENTITY_PAYLOAD = "commentEntityPayload"


@dataclass
class NormalizedComment:
    """One comment, independent of the payload shape it came from."""

    comment_id: str
    text: str = ""
    raw_time: str = ""
    author: str = ""
    channel: str = ""
    votes: int = 0
    replies: int = 0
    photo: str = ""
    is_hearted: bool = False
    is_paid: bool = False
    paid_chip: str | None = None

    @property
    def parent_id(self) -> str | None:
        """Parent comment id, inferred from the id structure of a reply."""
        if REPLY_SEPARATOR not in self.comment_id:
            return None
        return self.comment_id.rsplit(REPLY_SEPARATOR, 1)[0]

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


@dataclass
class CommentPage:
    """One page of comments plus the token for the next page.

    ``exhausted`` is set when the page is empty because every fetch attempt
    failed, as opposed to the platform returning nothing.
    """

    comments: list[NormalizedComment] = field(default_factory=list)
    next_token: str | None = None
    exhausted: bool = False


def parse_count(value: Any) -> int:
    """Parse a displayed count such as ``"1,234 likes"`` or ``"1.2K"``."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    compact = _COMPACT_NUMBER_RE.search(text)
    if compact:
        number = float(compact.group(1).replace(",", "."))
        return round(number * _MULTIPLIERS[compact.group(2)])

    digits = re.sub(r"\D", "", text)
    return int(digits) if digits else 0


def _run_text(content: Any) -> str:
    if not isinstance(content, dict):
        return ""
    runs = content.get("runs")
    if isinstance(runs, list):
        joined = "".join(str(r.get("text", "")) for r in runs if isinstance(r, dict))
        if joined:
            return joined
    return str(content.get("content") or content.get("simpleText") or "")


def _author_photo(author: dict[str, Any]) -> str:
    thumbnails = author.get("avatarThumbnails")
    if isinstance(thumbnails, list) and thumbnails and isinstance(thumbnails[0], dict):
        return thumbnails[0].get("url") or ""
    return author.get("avatarThumbnailUrl") or ""


def _paid_chip_text(chip: Any) -> str | None:
    if not isinstance(chip, dict):
        return None
    renderer = chip.get("paidCommentChipRenderer") or {}
    return (renderer.get("chipText") or {}).get("simpleText") or None


def _votes(toolbar: dict[str, Any]) -> int:
    return parse_count(toolbar.get("likeCountAriaLabel") or toolbar.get("likeCountNotliked"))


def _extract_view_model(payload: dict[str, Any], toolbar_states: dict[str, Any]) -> NormalizedComment | None:
    comment_id = payload.get("commentId")
    if not comment_id:
        return None

    author = payload.get("author") or {}
    toolbar = payload.get("toolbar") or {}
    heart = ((toolbar.get("heartButton") or {}).get("heartButtonViewModel") or {})
    time_runs = (payload.get("publishedTimeText") or {}).get("runs") or [{}]
    first_time_run = time_runs[0] if isinstance(time_runs[0], dict) else {}
    paid_chip = _paid_chip_text(payload.get("paidCommentChip"))

    return NormalizedComment(
        comment_id=comment_id,
        text=_run_text(payload.get("content")),
        raw_time=first_time_run.get("text") or "",
        author=author.get("displayName") or "",
        channel=author.get("channelId") or "",
        votes=_votes(toolbar),
        replies=parse_count(toolbar.get("replyCount")),
        photo=_author_photo(author),
        is_hearted=bool(heart.get("isHearted")),
        is_paid=paid_chip is not None,
        paid_chip=paid_chip,
    )


def _extract_entity_payload(
    payload: dict[str, Any], toolbar_states: dict[str, Any]
) -> NormalizedComment | None:
    properties = payload.get("properties") or {}
    comment_id = properties.get("commentId")
    if not comment_id:
        return None

    author = payload.get("author") or {}
    toolbar = payload.get("toolbar") or {}
    state = toolbar_states.get(properties.get("toolbarStateKey")) or {}
    paid_chip = _paid_chip_text(properties.get("paidCommentChip"))

    return NormalizedComment(
        comment_id=comment_id,
        text=_run_text(properties.get("content")),
        raw_time=properties.get("publishedTime") or "",
        author=author.get("displayName") or "",
        channel=author.get("channelId") or "",
        votes=_votes(toolbar),
        replies=parse_count(toolbar.get("replyCount")),
        photo=_author_photo(author),
        is_hearted=state.get("heartState") == HEARTED_STATE,
        is_paid=paid_chip is not None,
        paid_chip=paid_chip,
    )


EXTRACTORS: dict[CommentShape, Callable[[dict[str, Any], dict[str, Any]], NormalizedComment | None]] = {
    CommentShape.VIEW_MODEL: _extract_view_model,
    CommentShape.ENTITY_PAYLOAD: _extract_entity_payload,
}


def _toolbar_states(response: Any) -> dict[str, Any]:
    states = {}
    for state in search_dict(response, "engagementToolbarStateEntityPayload"):
        if isinstance(state, dict) and state.get("key"):
            states[state["key"]] = state
    return states


def _merge(existing: NormalizedComment, incoming: NormalizedComment, shape: CommentShape) -> NormalizedComment:
    """Combine two records of the same comment, preferring entity payload fields."""
    preferred, fallback = (incoming, existing) if shape == CommentShape.ENTITY_PAYLOAD else (existing, incoming)
    return NormalizedComment(
        comment_id=existing.comment_id,
        text=preferred.text or fallback.text,
        raw_time=preferred.raw_time or fallback.raw_time,
        author=preferred.author or fallback.author,
        channel=preferred.channel or fallback.channel,
        votes=preferred.votes or fallback.votes,
        replies=preferred.replies or fallback.replies,
        photo=preferred.photo or fallback.photo,
        is_hearted=preferred.is_hearted or fallback.is_hearted,
        is_paid=preferred.is_paid or fallback.is_paid,
        paid_chip=preferred.paid_chip or fallback.paid_chip,
    )


def extract_comments(response: Any) -> list[NormalizedComment]:
    """All comments in a response, one record per comment id."""
    toolbar_states = _toolbar_states(response)
    comments: dict[str, NormalizedComment] = {}

    for shape in CommentShape:
        extractor = EXTRACTORS[shape]
        for payload in search_dict(response, shape.value):
            if not isinstance(payload, dict):
                continue
            comment = extractor(payload, toolbar_states)
            if comment is None:
                continue
            existing = comments.get(comment.comment_id)
            comments[comment.comment_id] = _merge(existing, comment, shape) if existing else comment

    return list(comments.values())


def extract_next_token(response: Any) -> str | None:
    """Continuation token of the main comment section, if any.

    Reply-thread continuations are skipped; they never advance the page.
    """
    actions = [
        *search_dict(response, "reloadContinuationItemsCommand"),
        *search_dict(response, "appendContinuationItemsAction"),
    ]
    for action in actions:
        if not isinstance(action, dict):
            continue
        if str(action.get("targetId") or "").startswith(REPLY_TARGET_PREFIX):
            continue
        for item in action.get("continuationItems") or []:
            renderer = item.get("continuationItemRenderer") if isinstance(item, dict) else None
            if not renderer:
                continue
            token = endpoint_token(first(search_dict(renderer, "continuationEndpoint")))
            if token:
                return token
    return None


def normalize_response(response: Any) -> CommentPage:
    """Convert one raw continuation response into a ``CommentPage``.

    Raises:
        UpstreamError: If the response carries an explicit error message
    """
    if not response:
        return CommentPage()

    error = first(search_dict(response, "externalErrorMessage"))
    if error:
        raise UpstreamError(str(error))

    return CommentPage(
        comments=extract_comments(response),
        next_token=extract_next_token(response),
    )
