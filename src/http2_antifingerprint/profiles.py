"""
http2-antifingerprint - Browser Header Order Profiles

Wire order of headers as sent by Chrome, split by request shape. Body
verbs use the POST template, every other method uses the GET template.
"""

from dataclasses import dataclass

PSEUDO_HEADER_PREFIX = ":"

HEADER_METHOD = ":method"
HEADER_AUTHORITY = ":authority"
HEADER_SCHEME = ":scheme"
HEADER_PATH = ":path"

BODY_VERBS = ("post", "put", "patch")


@dataclass(frozen=True)
class HeaderOrderTemplate:
    name: str
    pseudo: tuple[str, ...]
    http: tuple[str, ...]


CHROME_POST = HeaderOrderTemplate(
    name="chrome-post",
    pseudo=(HEADER_METHOD, HEADER_AUTHORITY, HEADER_SCHEME, HEADER_PATH),
    http=(
        "content-length",
        "pragma",
        "cache-control",
        "sec-ch-ua",
        "sec-ch-ua-platform",
        "accept-language",
        "sec-ch-ua-mobile",
        "user-agent",
        "content-type",
        "accept",
        "origin",
        "sec-fetch-site",
        "sec-fetch-mode",
        "sec-fetch-dest",
        "referer",
        "accept-encoding",
    ),
)

CHROME_GET = HeaderOrderTemplate(
    name="chrome-get",
    pseudo=(HEADER_METHOD, HEADER_AUTHORITY, HEADER_SCHEME, HEADER_PATH),
    http=(
        "pragma",
        "cache-control",
        "sec-ch-ua",
        "sec-ch-ua-mobile",
        "sec-ch-ua-platform",
        "accept-language",
        "upgrade-insecure-requests",
        "user-agent",
        "accept",
        "sec-fetch-site",
        "sec-fetch-mode",
        "sec-fetch-user",
        "sec-fetch-dest",
        "referer",
        "accept-encoding",
    ),
)

CHROME_TEMPLATES = {
    "post": CHROME_POST,
    "get": CHROME_GET,
}


def is_pseudo_header(name: str) -> bool:
    return name.startswith(PSEUDO_HEADER_PREFIX)


def is_body_method(method: object) -> bool:
    """Case-insensitive match of ``method`` against the body verbs."""
    if not isinstance(method, str):
        return False
    return method.lower() in BODY_VERBS


def chrome_template_for(method: object) -> HeaderOrderTemplate:
    return CHROME_TEMPLATES["post" if is_body_method(method) else "get"]
