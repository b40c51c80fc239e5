"""Tolerant extraction of embedded data from YouTube pages and responses."""

import json
import re
from collections.abc import Iterator
from typing import Any
from urllib.parse import parse_qs, urlparse

from commentvault.constants import CONSENT_FLAGS
from commentvault.services.youtube.exceptions import ConfigNotFoundError, InitialDataNotFoundError

YT_CFG_RE = re.compile(r"ytcfg\.set\s*\(\s*(\{.+?\})\s*\)\s*;")
YT_INITIAL_DATA_RE = re.compile(
    r"(?:window\s*\[\s*[\"']ytInitialData[\"']\s*\]|ytInitialData)\s*=\s*(\{.+?\})\s*;\s*(?:var\s+meta|</script|\n)"
)
YT_VIDEO_ID_RE = re.compile(r"[A-Za-z0-9_-]{11}")
YT_HIDDEN_INPUT_RE = re.compile(
    r'<input\s+type="hidden"\s+name="([A-Za-z0-9_]+)"\s+value="([A-Za-z0-9_\-\.]*)"\s*(?:required|)\s*>'
)


def regex_search(text: str, pattern: re.Pattern[str], group: int = 1, default: Any = None) -> Any:
    """Return a group of the first match, or the default."""
    match = pattern.search(text)
    return match.group(group) if match else default


def search_dict(partial: Any, search_key: str) -> Iterator[Any]:
    """Yield every value stored under ``search_key`` anywhere in a JSON graph.

    Matched values are not searched further.
    """
    stack = [partial]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for key, value in current.items():
                if key == search_key:
                    yield value
                else:
                    stack.append(value)
        elif isinstance(current, list):
            stack.extend(current)


def first(iterator: Iterator[Any], default: Any = None) -> Any:
    """First item of an iterator, or the default."""
    return next(iterator, default)


def extract_ytcfg(html: str) -> dict[str, Any]:
    """Parse the ``ytcfg.set({...})`` session configuration.

    Raises:
        ConfigNotFoundError: If the blob is absent or not valid JSON
    """
    raw = regex_search(html, YT_CFG_RE, default="")
    if not raw:
        raise ConfigNotFoundError()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigNotFoundError() from e


def extract_initial_data(html: str) -> dict[str, Any]:
    """Parse the ``ytInitialData`` object.

    Raises:
        InitialDataNotFoundError: If the object is absent or not valid JSON
    """
    raw = regex_search(html, YT_INITIAL_DATA_RE, default="")
    if not raw:
        raise InitialDataNotFoundError()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise InitialDataNotFoundError() from e


def extract_hidden_inputs(html: str) -> dict[str, str]:
    """All hidden form fields of a page, by name."""
    return {name: value for name, value in YT_HIDDEN_INPUT_RE.findall(html)}


def build_consent_params(html: str, continue_url: str) -> dict[str, str]:
    """Form fields for accepting the consent interstitial.

    The hidden inputs of the interstitial, plus the page to return to and the
    fixed consent flags.
    """
    params = extract_hidden_inputs(html)
    params["continue"] = continue_url
    params.update(CONSENT_FLAGS)
    return params


def find_sort_menu(data: Any) -> list[dict[str, Any]]:
    """Entries of the comment section's sort menu, or an empty list."""
    renderer = first(search_dict(data, "sortFilterSubMenuRenderer")) or {}
    items = renderer.get("subMenuItems") if isinstance(renderer, dict) else None
    return items if isinstance(items, list) else []


def find_section_continuations(data: Any) -> list[dict[str, Any]]:
    """Continuation endpoints under the page's first section list."""
    section_list = first(search_dict(data, "sectionListRenderer")) or {}
    return [e for e in search_dict(section_list, "continuationEndpoint") if isinstance(e, dict)]


def endpoint_token(endpoint: Any) -> str | None:
    """Continuation token of a continuation endpoint."""
    if not isinstance(endpoint, dict):
        return None
    command = endpoint.get("continuationCommand") or {}
    return command.get("token") or None


def endpoint_api_url(endpoint: Any) -> str | None:
    """API path declared by an endpoint's command metadata."""
    if not isinstance(endpoint, dict):
        return None
    metadata = (endpoint.get("commandMetadata") or {}).get("webCommandMetadata") or {}
    return metadata.get("apiUrl") or None


def extract_video_id(url: str) -> str | None:
    """Video id of a watch, short or embed URL; a bare 11-char id is returned as is."""
    if YT_VIDEO_ID_RE.fullmatch(url):
        return url
    parsed = urlparse(url)
    if parsed.hostname and parsed.hostname.endswith("youtu.be"):
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif parsed.path.startswith(("/shorts/", "/embed/", "/live/")):
        candidate = parsed.path.split("/")[2]
    else:
        candidate = (parse_qs(parsed.query).get("v") or [""])[0]
    return candidate if YT_VIDEO_ID_RE.fullmatch(candidate) else None
