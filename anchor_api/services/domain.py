from urllib.parse import urlsplit


def extract_domain(url: str) -> str:
    """Return the host of ``url`` without a leading ``www.``.

    The input is returned unchanged when it cannot be parsed or carries no
    host, so there is always something to show.
    """
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return url
    if not host:
        return url
    if host.startswith("www."):
        host = host[4:]
    return host or url
