"""Registered-domain extraction.

A registered domain is the public suffix of a host plus exactly one more
label: ``foo.bar.thema.ai`` -> ``thema.ai``, ``mirrors.tuna.tsinghua.edu.cn``
-> ``tsinghua.edu.cn``. Multi-label suffixes come from the public suffix list
snapshot bundled with tldextract; the list is never fetched over the network.

Loading the suffix table is the expensive part, so build one `Extractor` per
batch (or per worker) and reuse it for every URL. Instances are not meant to
be shared between threads.
"""

from __future__ import annotations

import ipaddress
import logging

import tldextract

from .errors import InvalidUrl, NoHost, NoRegisteredDomain
from .urls import canonical_url, url_host

logger = logging.getLogger(__name__)


class Extractor:
    def __init__(self) -> None:
        # No URLs and no cache dir: only the bundled snapshot is used.
        self._tld = tldextract.TLDExtract(
            cache_dir=None,
            suffix_list_urls=(),
            fallback_to_snapshot=True,
            include_psl_private_domains=False,
        )

    def domain(self, url: str) -> str:
        """Return the registered domain of ``url``.

        Raises `InvalidUrl` for unparseable input, `NoHost` when the URL has
        no host and `NoRegisteredDomain` for IP literals or hosts that are
        themselves a public suffix.
        """

        try:
            canonical = canonical_url(url)
        except InvalidUrl as e:
            if e.reason == "empty host":
                raise NoHost(str(url)) from e
            raise

        host = url_host(canonical)
        if not host:
            raise NoHost(canonical)

        try:
            ipaddress.ip_address(host)
        except ValueError:
            pass
        else:
            raise NoRegisteredDomain(host)

        ext = self._tld(host)
        if not ext.domain or not ext.suffix:
            raise NoRegisteredDomain(host)
        registered = f"{ext.domain}.{ext.suffix}"
        logger.debug("registered domain host=%s domain=%s", host, registered)
        return registered
