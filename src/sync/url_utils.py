"""URL normalization and validation applied before a bookmark is submitted."""
from pydantic import HttpUrl, TypeAdapter, ValidationError

from sync.exceptions import InvalidInputError

_http_url = TypeAdapter(HttpUrl)


def normalize_url(raw_url: str) -> str:
    """
    Trim a user-entered URL and default its scheme to https.

    Example:
        "example.com/page" -> "https://example.com/page"
    """
    url = raw_url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


def validate_url(url: str) -> str:
    """
    Check that a normalized URL is well formed.

    Returns the URL unchanged so the stored value matches what the user typed.

    Raises:
        InvalidInputError: If the URL cannot be parsed as an http(s) URL.
    """
    try:
        _http_url.validate_python(url)
    except ValidationError as e:
        raise InvalidInputError("Please enter a valid URL") from e
    return url


def prepare_bookmark_input(raw_url: str, raw_title: str) -> tuple[str, str]:
    """
    Normalize and validate user input for a new bookmark.

    Raises:
        InvalidInputError: If the URL is malformed or the title is empty.
    """
    url = validate_url(normalize_url(raw_url))
    title = raw_title.strip()
    if not title:
        raise InvalidInputError("Please enter a title")
    return url, title
