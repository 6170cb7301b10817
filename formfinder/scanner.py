"""
Form cache scanning.

Cached form configurations live under ``forms:cache:<id>`` as JSON text. A scan
keeps the forms whose first pages match a reference page signature and groups
them by the SHA-256 of the raw cached bytes, so forms sharing byte-identical
content end up in the same group.

The same algorithm runs inside the form runner container (see
``remote/scan_forms.js``); ``RedisFormScanner`` runs it in-process wherever
Python can reach the cache directly::

    python -m formfinder.scanner
"""
import hashlib
import json
import logging
import os
import sys
from dataclasses import dataclass, field

import redis

from .config_loader import ConfigLoader
from .exceptions import FormFinderError, RedisUriNotFound

logger = logging.getLogger(__name__)

REPORT_HEADER = "--- Analysis of Matching Forms ---"
HASH_PREFIX_LENGTH = 12


@dataclass(frozen=True)
class FormMatch:
    form_id: str
    sha256: str
    size: int
    page_count: int


@dataclass
class MatchGroup:
    sha256: str
    size: int
    page_count: int
    forms: list = field(default_factory=list)


@dataclass
class ScanReport:
    total_keys: int
    groups: list

    @property
    def form_ids(self):
        return [form_id for group in self.groups for form_id in group.forms]


def find_redis_uri(environ, names, host_suffix=None):
    """
    Look up the Redis URI in the named variables, in order. If none is set and a
    host suffix is configured, fall back to the first variable whose value
    contains it.
    """
    for name in names:
        if environ.get(name):
            logger.info(f"Found Redis URI in env var {name}")
            return environ[name]
    if host_suffix:
        for name, value in environ.items():
            if value and host_suffix in value:
                logger.info(f"Found Redis URI in env var {name} by host suffix")
                return value
    raise RedisUriNotFound(names)


def extract_pages(form):
    config = form.get("configuration")
    if config is None:
        config = form
    if not isinstance(config, dict):
        return []
    pages = config.get("pages")
    return pages if isinstance(pages, list) else []


def matches_signature(pages, reference_paths):
    if len(pages) < len(reference_paths):
        return False
    return all(
        isinstance(page, dict) and page.get("path") == path
        for page, path in zip(pages, reference_paths)
    )


def strip_prefix(key, key_prefix):
    return key[len(key_prefix) :] if key.startswith(key_prefix) else key


def inspect_entry(key, raw, key_prefix, reference_paths):
    """
    Return a FormMatch for a cache entry matching the signature, else None.

    ``raw`` is the stored value as bytes; hash and size are taken over those bytes
    exactly as stored.
    """
    if not raw:
        return None
    data = raw.encode("utf-8") if isinstance(raw, str) else raw
    try:
        form = json.loads(data.decode("utf-8"))
    except ValueError:
        # Entries that are not valid UTF-8 JSON are skipped
        return None
    if not isinstance(form, dict):
        return None

    pages = extract_pages(form)
    if not matches_signature(pages, reference_paths):
        return None

    return FormMatch(
        form_id=strip_prefix(key, key_prefix),
        sha256=hashlib.sha256(data).hexdigest(),
        size=len(data),
        page_count=len(pages),
    )


def group_matches(matches):
    groups = {}
    for match in matches:
        if match.sha256 not in groups:
            groups[match.sha256] = MatchGroup(
                sha256=match.sha256, size=match.size, page_count=match.page_count
            )
        groups[match.sha256].forms.append(match.form_id)
    return list(groups.values())


def format_report(report, designer_url, environment=""):
    lines = [f"Found {report.total_keys} total forms.", "", REPORT_HEADER]
    for group in report.groups:
        lines.append("")
        lines.append(f"GROUP HASH: {group.sha256[:HASH_PREFIX_LENGTH]}...")
        lines.append(f"  Forms in group: {len(group.forms)}")
        lines.append(f"  Page count: {group.page_count}")
        lines.append(f"  Size (bytes): {group.size}")
        for form_id in group.forms:
            url = designer_url.format(form_id=form_id, environment=environment)
            lines.append(f"    - {url}")
    lines.append("")
    lines.append(f"{len(report.groups)} group(s) of matching forms.")
    return "\n".join(lines)


class RedisFormScanner:
    def __init__(
        self, redis_uri, key_prefix, reference_paths, tls=True, tls_verify=False
    ):
        self.redis_uri = redis_uri
        self.key_prefix = key_prefix
        self.reference_paths = list(reference_paths)
        self.tls = tls
        self.tls_verify = tls_verify

    @classmethod
    def from_config(cls, scan_config, environ=None):
        environ = os.environ if environ is None else environ
        return cls(
            find_redis_uri(
                environ,
                scan_config["redis_uri_env"],
                scan_config.get("redis_host_suffix"),
            ),
            key_prefix=scan_config["key_prefix"],
            reference_paths=scan_config["reference_paths"],
            tls=scan_config["tls"],
            tls_verify=scan_config["tls_verify"],
        )

    def connect(self):
        uri = self.redis_uri
        kwargs = {}
        if self.tls and uri.startswith("redis://"):
            uri = "rediss://" + uri[len("redis://") :]
        if uri.startswith("rediss://"):
            # Certificate checks are off unless tls_verify is set; the cache is
            # only reachable on the internal network.
            kwargs["ssl_cert_reqs"] = "required" if self.tls_verify else "none"
        return redis.from_url(uri, **kwargs)

    def scan(self):
        logger.info("Connecting and searching Redis...")
        client = self.connect()
        try:
            keys = client.keys(f"{self.key_prefix}*")
            matches = []
            for key in keys:
                match = inspect_entry(
                    key.decode("utf-8", errors="replace"),
                    client.get(key),
                    self.key_prefix,
                    self.reference_paths,
                )
                if match:
                    matches.append(match)
        finally:
            client.close()
        return ScanReport(total_keys=len(keys), groups=group_matches(matches))


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)
    try:
        scan_config = ConfigLoader().load_config()["scan"]
        report = RedisFormScanner.from_config(scan_config).scan()
    except (FormFinderError, redis.RedisError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(format_report(report, scan_config["designer_url"]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
