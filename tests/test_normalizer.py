"""Tests for response normalization."""

import pytest

from commentvault.services.youtube.exceptions import UpstreamError
from commentvault.services.youtube.normalizer import (
    CommentShape,
    NormalizedComment,
    extract_next_token,
    normalize_response,
    parse_count,
)


def view_model(
    comment_id: str,
    text: str = "Great video",
    likes: str | None = "12",
    hearted: bool = False,
    replies: str | None = None,
) -> dict:
    toolbar = {"heartButton": {"heartButtonViewModel": {"isHearted": hearted}}}
    if likes is not None:
        toolbar["likeCountNotliked"] = likes
    if replies is not None:
        toolbar["replyCount"] = replies
    return {
        "commentViewModel": {
            "commentId": comment_id,
            "content": {"runs": [{"text": text[:5]}, {"text": text[5:]}]},
            "publishedTimeText": {"runs": [{"text": "2 days ago"}]},
            "author": {
                "displayName": "@viewer",
                "channelId": "UC1234567890123456789012",
                "avatarThumbnails": [{"url": "https://yt3.example/a.jpg"}],
            },
            "toolbar": toolbar,
        }
    }


def entity_payload(
    comment_id: str,
    text: str = "Entity text",
    state_key: str | None = "state-1",
    aria_label: str | None = "1.2K likes",
    replies: str = "3",
    paid: str | None = None,
) -> dict:
    properties = {
        "commentId": comment_id,
        "content": {"content": text},
        "publishedTime": "1 week ago (edited)",
        "toolbarStateKey": state_key,
    }
    if paid:
        properties["paidCommentChip"] = {
            "paidCommentChipRenderer": {"chipText": {"simpleText": paid}}
        }
    toolbar = {"replyCount": replies}
    if aria_label is not None:
        toolbar["likeCountAriaLabel"] = aria_label
    return {
        "commentEntityPayload": {
            "properties": properties,
            "author": {
                "displayName": "@entity",
                "channelId": "UCabcdefghijabcdefghij12",
                "avatarThumbnailUrl": "https://yt3.example/b.jpg",
            },
            "toolbar": toolbar,
        }
    }


def toolbar_state(key: str, hearted: bool) -> dict:
    return {
        "engagementToolbarStateEntityPayload": {
            "key": key,
            "heartState": "TOOLBAR_HEART_STATE_HEARTED" if hearted else "TOOLBAR_HEART_STATE_UNHEARTED",
        }
    }


def continuation_item(token: str) -> dict:
    return {
        "continuationItemRenderer": {
            "continuationEndpoint": {"continuationCommand": {"token": token}}
        }
    }


def response_with(items: list[dict], mutations: list[dict] | None = None, **action: object) -> dict:
    return {
        "onResponseReceivedEndpoints": [
            {
                "appendContinuationItemsAction": {
                    "continuationItems": items,
                    **action,
                }
            }
        ],
        "frameworkUpdates": {
            "entityBatchUpdate": {
                "mutations": [{"payload": m} for m in mutations or []]
            }
        },
    }


class TestViewModelShape:
    """Tests for the flat view-model shape."""

    def test_fields(self):
        """All canonical fields come from the flat payload."""
        page = normalize_response(response_with([view_model("Ugx1", hearted=True, replies="4")]))

        [comment] = page.comments
        assert comment.comment_id == "Ugx1"
        assert comment.text == "Great video"
        assert comment.raw_time == "2 days ago"
        assert comment.author == "@viewer"
        assert comment.channel == "UC1234567890123456789012"
        assert comment.photo == "https://yt3.example/a.jpg"
        assert comment.votes == 12
        assert comment.replies == 4
        assert comment.is_hearted is True
        assert comment.is_paid is False

    def test_missing_counts_default_to_zero(self):
        """No like or reply text means zero."""
        page = normalize_response(response_with([view_model("Ugx1", likes=None)]))

        assert page.comments[0].votes == 0
        assert page.comments[0].replies == 0

    def test_malformed_time_runs(self):
        """A non-object time run leaves the raw time empty instead of failing the page."""
        item = view_model("Ugx1")
        item["commentViewModel"]["publishedTimeText"] = {"runs": ["2 days ago"]}

        page = normalize_response(response_with([item]))

        assert page.comments[0].raw_time == ""


class TestEntityPayloadShape:
    """Tests for the entity-payload shape and its toolbar lookup."""

    def test_heart_from_toolbar_state(self):
        """Heart state is looked up by the toolbar state key."""
        response = response_with([], mutations=[entity_payload("Ugy1"), toolbar_state("state-1", True)])

        [comment] = normalize_response(response).comments

        assert comment.is_hearted is True
        assert comment.text == "Entity text"
        assert comment.photo == "https://yt3.example/b.jpg"
        assert comment.raw_time == "1 week ago (edited)"

    def test_unknown_state_key_is_not_hearted(self):
        """A key without a toolbar state resolves to not hearted."""
        response = response_with([], mutations=[entity_payload("Ugy1", state_key="missing")])

        [comment] = normalize_response(response).comments

        assert comment.is_hearted is False

    def test_votes_from_aria_label(self):
        """Compact counts in the aria label are expanded."""
        response = response_with([], mutations=[entity_payload("Ugy1", aria_label="1.2K likes")])

        assert normalize_response(response).comments[0].votes == 1200

    def test_paid_chip(self):
        """A paid comment chip marks the comment as paid."""
        response = response_with([], mutations=[entity_payload("Ugy1", paid="$5.00")])

        [comment] = normalize_response(response).comments

        assert comment.is_paid is True
        assert comment.paid_chip == "$5.00"


class TestDuplicates:
    """Tests for comments present in both shapes."""

    def test_merged_into_one_record(self):
        """The same id in both shapes yields one comment, entity fields first."""
        response = response_with(
            [view_model("Ugz1", text="View text", likes="7")],
            mutations=[entity_payload("Ugz1", text="Entity text", aria_label=None), toolbar_state("state-1", True)],
        )

        [comment] = normalize_response(response).comments

        assert comment.text == "Entity text"
        assert comment.votes == 7
        assert comment.is_hearted is True

    def test_shape_values(self):
        """Shapes are named after their response keys."""
        assert CommentShape.VIEW_MODEL.value == "commentViewModel"
        assert CommentShape.ENTITY_PAYLOAD.value == "commentEntityPayload"


class TestParentInference:
    """Tests for reply detection from the comment id."""

    def test_reply_parent(self):
        """The parent id is everything before the last separator."""
        comment = NormalizedComment(comment_id="abc.def")

        assert comment.parent_id == "abc"
        assert comment.is_reply is True

    def test_top_level(self):
        """An id without a separator has no parent."""
        comment = NormalizedComment(comment_id="abc")

        assert comment.parent_id is None
        assert comment.is_reply is False

    def test_nested_separators(self):
        """Only the last separator is cut."""
        assert NormalizedComment(comment_id="a.b.c").parent_id == "a.b"


class TestNextToken:
    """Tests for page-level continuation resolution."""

    def test_main_section_token(self):
        """The continuation item of the comment section is the next token."""
        response = response_with([view_model("Ugx1"), continuation_item("NEXT")])

        assert normalize_response(response).next_token == "NEXT"

    def test_reply_thread_token_skipped(self):
        """Reply-thread continuations never become the page token."""
        response = {
            "onResponseReceivedEndpoints": [
                {
                    "appendContinuationItemsAction": {
                        "targetId": "comment-replies-item-Ugx1",
                        "continuationItems": [continuation_item("REPLIES")],
                    }
                }
            ]
        }

        assert extract_next_token(response) is None

    def test_reload_command(self):
        """Reload commands are scanned as well."""
        response = {
            "onResponseReceivedEndpoints": [
                {
                    "reloadContinuationItemsCommand": {
                        "targetId": "comments-section",
                        "continuationItems": [continuation_item("RELOAD")],
                    }
                }
            ]
        }

        assert extract_next_token(response) == "RELOAD"

    def test_last_page(self):
        """No continuation item means no next page."""
        page = normalize_response(response_with([view_model("Ugx1")]))

        assert page.next_token is None
        assert len(page.comments) == 1


class TestErrors:
    """Tests for upstream error handling."""

    def test_external_error_message(self):
        """An embedded error aborts with the message."""
        response = {"responseContext": {"errors": {"externalErrorMessage": "Video unavailable"}}}

        with pytest.raises(UpstreamError, match="Video unavailable"):
            normalize_response(response)

    def test_empty_response(self):
        """An empty response is an empty page."""
        page = normalize_response({})

        assert page.comments == []
        assert page.next_token is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, 0),
        ("", 0),
        ("42", 42),
        ("1,234 likes", 1234),
        ("1.2K", 1200),
        ("3M", 3_000_000),
        (17, 17),
    ],
)
def test_parse_count(value, expected):
    """Displayed counts parse to integers."""
    assert parse_count(value) == expected
