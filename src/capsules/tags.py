"""Tag prefix inference and synonym-aware tag matching.

Tags carry an optional semantic prefix (``file:``, ``table:``, ``service:``,
``concept:``, ``api:``). Untyped tags are classified on write by a fixed rule
cascade; once prefixed, the prefix is part of the tag's identity.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Optional


class TagPrefix(StrEnum):
    FILE = "file:"
    TABLE = "table:"
    SERVICE = "service:"
    CONCEPT = "concept:"
    API = "api:"


# Prefix checks run in this order.
ALL_PREFIXES: tuple[TagPrefix, ...] = (
    TagPrefix.FILE,
    TagPrefix.TABLE,
    TagPrefix.SERVICE,
    TagPrefix.CONCEPT,
    TagPrefix.API,
)

_TABLE_NAME = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)+$")


@dataclass(frozen=True)
class TagRules:
    """Static tables driving classification and synonym expansion."""

    http_methods: tuple[str, ...] = ("GET ", "POST ", "PUT ", "DELETE ", "PATCH ", "HEAD ", "OPTIONS ")
    api_markers: tuple[str, ...] = ("/api/", "/v1/", "/v2/")
    file_extensions: tuple[str, ...] = (
        ".ts", ".tsx", ".js", ".jsx", ".go", ".py", ".rs", ".java", ".rb", ".php", ".cs",
        ".cpp", ".c", ".h", ".swift", ".kt", ".scala", ".vue", ".svelte", ".md", ".yaml",
        ".yml", ".json", ".toml", ".sql",
    )
    table_suffixes: tuple[str, ...] = (
        "_users", "_events", "_logs", "_records", "_items", "_entries", "_data", "_config",
        "_settings", "_sessions", "_tokens", "_keys", "_roles", "_permissions",
    )
    service_suffixes: tuple[str, ...] = (
        "Service", "Controller", "Handler", "Repository", "Manager", "Provider", "Factory",
        "Client", "Adapter", "Gateway", "Middleware", "Guard", "Interceptor", "Resolver",
    )
    synonym_groups: tuple[tuple[str, ...], ...] = (
        ("auth", "authentication", "login", "signin", "sign-in", "oauth", "jwt", "token"),
        ("authz", "authorization", "permission", "permissions", "access", "access-control", "rbac", "acl"),
        ("db", "database", "sql", "postgres", "postgresql", "mysql", "sqlite", "mongo", "mongodb"),
        ("api", "endpoint", "endpoints", "route", "routes", "handler", "handlers", "controller"),
        ("test", "tests", "testing", "spec", "specs", "unit", "integration", "e2e"),
        ("config", "configuration", "settings", "options", "preferences", "env", "environment"),
        ("cache", "caching", "redis", "memcache", "memoize", "memoization"),
        ("queue", "queues", "job", "jobs", "worker", "workers", "async", "background"),
        ("log", "logging", "logger", "logs", "debug", "trace", "audit"),
        ("error", "errors", "exception", "exceptions", "failure", "failures", "handling"),
        ("security", "secure", "vulnerability", "vulnerabilities", "xss", "csrf", "injection"),
        ("rate", "ratelimit", "rate-limit", "throttle", "throttling", "limit", "limiting"),
        ("validate", "validation", "validator", "validators", "schema", "sanitize"),
        ("user", "users", "account", "accounts", "profile", "profiles", "member"),
        ("notify", "notification", "notifications", "alert", "alerts", "email", "sms"),
    )


DEFAULT_TAG_RULES = TagRules()


def has_prefix(tag: str) -> bool:
    return any(tag.startswith(p) for p in ALL_PREFIXES)


def parse_tag(tag: str) -> tuple[Optional[TagPrefix], str]:
    """Split a tag into (prefix, value). Unprefixed tags return (None, tag)."""
    for p in ALL_PREFIXES:
        if tag.startswith(p):
            return p, tag[len(p):]
    return None, tag


def filter_by_prefix(tags: Iterable[str], prefix: TagPrefix) -> list[str]:
    return [t for t in tags if parse_tag(t)[0] == prefix]


def file_tags(tags: Iterable[str]) -> list[str]:
    return filter_by_prefix(tags, TagPrefix.FILE)


class TagClassifier:
    """Infers tag prefixes and matches tag queries against a rule table."""

    def __init__(self, rules: TagRules = DEFAULT_TAG_RULES):
        self.rules = rules

    def infer_prefix(self, tag: str) -> TagPrefix:
        """Classify an untyped tag. Rule order matters: API paths contain '/'."""
        prefix, _ = parse_tag(tag)
        if prefix is not None:
            return prefix

        tag = tag.strip()
        if not tag:
            return TagPrefix.CONCEPT

        upper = tag.upper()
        if any(upper.startswith(m) for m in self.rules.http_methods):
            return TagPrefix.API
        if any(marker in tag for marker in self.rules.api_markers):
            return TagPrefix.API

        if "/" in tag:
            return TagPrefix.FILE
        lower = tag.lower()
        if any(lower.endswith(ext) for ext in self.rules.file_extensions):
            return TagPrefix.FILE

        if _TABLE_NAME.match(tag):
            if any(tag.endswith(s) for s in self.rules.table_suffixes):
                return TagPrefix.TABLE
            if tag.count("_") >= 1 and "." not in tag:
                return TagPrefix.TABLE

        if tag[0].isupper() and any(tag.endswith(s) for s in self.rules.service_suffixes):
            return TagPrefix.SERVICE

        return TagPrefix.CONCEPT

    def normalize_tag(self, tag: str) -> str:
        """Strip markdown backticks and add the inferred prefix if none is present."""
        tag = tag.strip("`")
        if has_prefix(tag):
            return tag
        return f"{self.infer_prefix(tag)}{tag}"

    def normalize_tags(self, tags: Iterable[str]) -> list[str]:
        return [self.normalize_tag(t) for t in tags]

    def synonyms(self, word: str) -> list[str]:
        """Other members of the first synonym group containing word."""
        word = word.lower()
        for group in self.rules.synonym_groups:
            if word in group:
                return [t for t in group if t != word]
        return []

    def matches_tag_query(self, tags: Iterable[str], query: str) -> bool:
        """Prefixed query: same prefix and value containment. Unprefixed: value containment."""
        query_prefix, query_value = parse_tag(query)
        query_value = query_value.lower()

        for tag in tags:
            tag_prefix, tag_value = parse_tag(tag)
            if query_prefix is not None and tag_prefix != query_prefix:
                continue
            if query_value in tag_value.lower():
                return True
        return False

    def matches_tag_query_with_synonyms(self, tags: Iterable[str], query: str) -> bool:
        tags = list(tags)
        if self.matches_tag_query(tags, query):
            return True
        _, query_value = parse_tag(query)
        return any(self.matches_tag_query(tags, syn) for syn in self.synonyms(query_value))


# Module-level default
default_classifier = TagClassifier()


def infer_prefix(tag: str) -> TagPrefix:
    return default_classifier.infer_prefix(tag)


def normalize_tag(tag: str) -> str:
    return default_classifier.normalize_tag(tag)


def normalize_tags(tags: Iterable[str]) -> list[str]:
    return default_classifier.normalize_tags(tags)


def matches_tag_query(tags: Iterable[str], query: str) -> bool:
    return default_classifier.matches_tag_query(tags, query)


def matches_tag_query_with_synonyms(tags: Iterable[str], query: str) -> bool:
    return default_classifier.matches_tag_query_with_synonyms(tags, query)
