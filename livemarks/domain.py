from __future__ import annotations

from urllib.parse import quote, urlparse

import tldextract  # type: ignore

# Bundled public-suffix snapshot only; never fetch the list over the network.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def domain_of(url: str) -> str:
    try:
        p = urlparse(url)
        host = p.hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def suggest_title(url: str) -> str:
    """Readable default title from the registered domain ("github.com" -> "Github")."""
    ext = _EXTRACT(url)
    name = ext.domain or domain_of(url).split(".")[0]
    if not name:
        return ""
    return name[:1].upper() + name[1:]


def favicon_url(url: str, template: str) -> str | None:
    host = domain_of(url)
    if not host or not template:
        return None
    return template.format(host=quote(host, safe=".-"))
