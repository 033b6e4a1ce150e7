"""Native query builders for Bugzilla and Jira."""

from typing import Iterable, Sequence
from urllib.parse import urlencode

from .models import IssueId, ProductComponent

RESOLVED_STATUSES = ("RESOLVED", "VERIFIED", "CLOSED")

BUG_FIELDS = (
    "id",
    "summary",
    "product",
    "component",
    "status",
    "resolution",
    "assigned_to",
    "assigned_to_detail",
    "last_change_time",
    "cf_last_resolved",
    "groups",
)

ID_CHUNK_SIZE = 300
KEY_CHUNK_SIZE = 100

QueryParams = list[tuple[str, str]]


def _resolved_params(since_iso: str) -> QueryParams:
    params: QueryParams = [("status", status) for status in RESOLVED_STATUSES]
    params.extend(
        [
            ("resolution", "FIXED"),
            ("chfield", "resolution"),
            ("chfieldfrom", since_iso),
            ("include_fields", ",".join(BUG_FIELDS)),
        ]
    )
    return params


def _encode(params: QueryParams) -> str:
    return urlencode(params)


def dedupe_components(pairs: Iterable[ProductComponent]) -> list[ProductComponent]:
    """Drop duplicates and components already covered by a product-only entry."""
    pairs = list(pairs)
    product_only = {pair.product for pair in pairs if not pair.component}
    seen: set[str] = set()
    result = []
    for pair in pairs:
        if pair.component and pair.product in product_only:
            continue
        key = f"{pair.product}:::{pair.component or '*'}"
        if key in seen:
            continue
        seen.add(key)
        result.append(pair)
    return result


def build_component_queries(
    pairs: Iterable[ProductComponent], since_iso: str
) -> list[str]:
    """One Bugzilla query per distinct product/component pair."""
    queries = []
    for pair in dedupe_components(pairs):
        params: QueryParams = [("product", pair.product)]
        if pair.component:
            params.append(("component", pair.component))
        queries.append(_encode(params + _resolved_params(since_iso)))
    return queries


def build_whiteboard_queries(tags: Iterable[str], since_iso: str) -> list[str]:
    """One substring whiteboard query per tag."""
    queries = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            continue
        params: QueryParams = [("whiteboard", tag), ("whiteboard_type", "substring")]
        queries.append(_encode(params + _resolved_params(since_iso)))
    return queries


def build_assignee_query(assignees: Iterable[str], since_iso: str) -> str | None:
    """Single query matching any of the assignee emails."""
    emails = [email.strip() for email in assignees if email and email.strip()]
    if not emails:
        return None
    params: QueryParams = [("assigned_to", email) for email in emails]
    return _encode(params + _resolved_params(since_iso))


def build_id_queries(
    ids: Sequence[int], since_iso: str | None = None, chunk_size: int = ID_CHUNK_SIZE
) -> list[str]:
    """Chunked id lookups, optionally restricted to issues fixed since ``since_iso``."""
    queries = []
    for start in range(0, len(ids), chunk_size):
        chunk = ids[start : start + chunk_size]
        params: QueryParams = [("id", ",".join(str(bug_id) for bug_id in chunk))]
        if since_iso:
            params.extend(_resolved_params(since_iso))
        else:
            params.append(("include_fields", ",".join(BUG_FIELDS)))
        queries.append(_encode(params))
    return queries


def build_product_query(product: str, since_iso: str) -> str:
    """Bugzilla equivalent of a project-level done-recently query."""
    return _encode([("product", product)] + _resolved_params(since_iso))


def build_buglist_url(
    host: str,
    since_iso: str,
    *,
    components: Iterable[ProductComponent] = (),
    whiteboards: Sequence[str] = (),
    assignees: Sequence[str] = (),
    ids: Sequence[IssueId] = (),
) -> str:
    """Bugzilla ``buglist.cgi`` link reproducing the report's search."""
    params: QueryParams = [
        ("bug_status", ",".join(RESOLVED_STATUSES)),
        ("resolution", "FIXED"),
        ("chfieldfrom", since_iso),
        ("chfieldto", "Now"),
    ]
    if ids:
        params.append(("bug_id", ",".join(str(bug_id) for bug_id in ids)))
    for pair in dedupe_components(components):
        params.append(("product", pair.product))
        if pair.component:
            params.append(("component", pair.component))

    index = 1
    for field, values in (
        ("assigned_to", [a for a in assignees if a]),
        ("status_whiteboard", [w for w in whiteboards if w]),
    ):
        if not values:
            continue
        params.extend([(f"f{index}", "OP"), (f"j{index}", "OR")])
        index += 1
        operator = "equals" if field == "assigned_to" else "substring"
        for value in values:
            params.extend(
                [(f"f{index}", field), (f"o{index}", operator), (f"v{index}", value)]
            )
            index += 1
        params.append((f"f{index}", "CP"))
        index += 1

    return f"{host.rstrip('/')}/buglist.cgi?{_encode(params)}"


def build_jira_project_query(project: str, days: int) -> str:
    """JQL for a project's issues done within the last ``days``."""
    return f"project = {project} AND statusCategory = Done AND updated >= -{days}d"


def build_jira_key_queries(
    keys: Sequence[str], chunk_size: int = KEY_CHUNK_SIZE
) -> list[str]:
    """Chunked ``key IN (...)`` lookups."""
    return [
        f"key IN ({', '.join(keys[start : start + chunk_size])})"
        for start in range(0, len(keys), chunk_size)
    ]


def build_jira_browse_url(base_url: str, keys: Sequence[str]) -> str:
    """Jira issue navigator link for the given keys."""
    base = base_url.rstrip("/")
    if not keys:
        return f"{base}/issues/"
    jql = "key in (" + ", ".join(keys) + ")"
    return f"{base}/issues/?{urlencode({'jql': jql})}"
