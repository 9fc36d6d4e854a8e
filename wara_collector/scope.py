import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Tuple

from .config import CollectorParameterError, GLOBAL_RESOURCE_TYPES
from .utils import resource_group_path

_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_TAG_RE = re.compile(r"^\s*(?P<key>[^=!~]+?)\s*(?P<op>==|=~|!=|!~)\s*(?P<values>.+?)\s*$")


@dataclass(frozen=True)
class Scope:
    """Lower-cased subscription ids, resource-group paths and resource ids to collect."""
    subscriptions: FrozenSet[str] = field(default_factory=frozenset)
    resource_groups: FrozenSet[str] = field(default_factory=frozenset)
    resource_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not (self.subscriptions or self.resource_groups or self.resource_ids)

    @property
    def query_subscriptions(self) -> List[str]:
        """Every subscription an ARG query has to cover for this scope."""
        subs = set(self.subscriptions)
        for path in list(self.resource_groups) + list(self.resource_ids):
            subs.add(path.split('/')[2])
        return sorted(subs)


def _normalize_scope_entry(entry: str) -> Tuple[str, str]:
    """Classifies one scope entry as ('subscription'|'resource_group'|'resource', key)."""
    value = entry.strip().rstrip('/')
    if _GUID_RE.match(value):
        return 'subscription', value.lower()

    parts = value.split('/')
    if len(parts) < 3 or parts[0] != '' or parts[1].lower() != 'subscriptions' or not parts[2]:
        raise CollectorParameterError(f"Invalid scope entry '{entry}': expected a subscription id or an ARM path.")
    if len(parts) == 3:
        return 'subscription', parts[2].lower()
    if len(parts) == 5 and parts[3].lower() == 'resourcegroups' and parts[4]:
        return 'resource_group', value.lower()
    if len(parts) > 5:
        return 'resource', value.lower()
    raise CollectorParameterError(f"Invalid scope entry '{entry}': incomplete ARM path.")

def parse_scope(subscription_ids=None, resource_groups=None, resource_ids=None) -> Scope:
    """Builds a Scope from CLI/config values. Entries are classified by their path depth."""
    buckets = {'subscription': set(), 'resource_group': set(), 'resource': set()}
    for entry in list(subscription_ids or []) + list(resource_groups or []) + list(resource_ids or []):
        if not entry or not entry.strip():
            continue
        kind, key = _normalize_scope_entry(entry)
        buckets[kind].add(key)
    return Scope(
        subscriptions=frozenset(buckets['subscription']),
        resource_groups=frozenset(buckets['resource_group']),
        resource_ids=frozenset(buckets['resource']),
    )

# --- Scope Filters ---

def in_scope(record, scope: Scope) -> bool:
    subscription_id = (record.subscription_id or '').lower()
    if subscription_id in scope.subscriptions:
        return True
    rg_path = resource_group_path(record.subscription_id, record.resource_group)
    if rg_path and rg_path in scope.resource_groups:
        return True
    return (record.id or '').lower() in scope.resource_ids

def filter_by_scope(records: Iterable, scope: Scope) -> List:
    """Keeps the records that fall inside the scope. Records are never modified."""
    return [record for record in records if in_scope(record, scope)]

def is_global(record) -> bool:
    return (record.type or '').lower() in GLOBAL_RESOURCE_TYPES

def split_global(records: Iterable) -> Tuple[List, List]:
    """Splits records into (global, resource_scoped). Global ones describe a whole subscription."""
    global_records, scoped_records = [], []
    for record in records:
        (global_records if is_global(record) else scoped_records).append(record)
    return global_records, scoped_records

def apply_filters(records: Iterable, scope: Scope, tagged_ids=None) -> List:
    """Scope filter, then tag filter, with global records spliced back afterwards."""
    logger = logging.getLogger()
    global_records, scoped_records = split_global(records)
    kept = filter_by_scope(scoped_records, scope)
    if tagged_ids is not None:
        kept = filter_by_tags(kept, *tagged_ids)
    logger.debug(f"Filtering kept {len(kept)} of {len(scoped_records)} scoped record(s), restored {len(global_records)} global.")
    return kept + global_records

# --- Tags ---

@dataclass(frozen=True)
class TagFilter:
    key: str
    operator: str
    values: Tuple[str, ...]

    @property
    def negated(self) -> bool:
        return self.operator in ('!=', '!~')

def parse_tag_filters(tags: Iterable[str]) -> List[TagFilter]:
    """Parses 'key==v1||v2' style filters. Keys and values compare case-insensitively."""
    filters = []
    for tag in tags or []:
        if not tag or not tag.strip():
            continue
        match = _TAG_RE.match(tag)
        if not match:
            raise CollectorParameterError(f"Invalid tag filter '{tag}': expected key==value, key=~value, key!=value or key!~value.")
        values = tuple(v.strip().lower() for v in match.group('values').split('||') if v.strip())
        if not values:
            raise CollectorParameterError(f"Invalid tag filter '{tag}': no values given.")
        filters.append(TagFilter(key=match.group('key').strip().lower(), operator=match.group('op'), values=values))
    return filters

def _kql_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"

def build_tag_query(filters: List[TagFilter], table: str = "resources") -> str:
    """KQL returning the lower-cased ids of `table` rows whose tags match every filter."""
    if not filters:
        raise CollectorParameterError("At least one tag filter is required to build a tag query.")
    conditions = []
    for tag_filter in filters:
        values = ", ".join(_kql_string(v) for v in tag_filter.values)
        op = "!in~" if tag_filter.negated else "in~"
        conditions.append(f"tostring(tagsLower[{_kql_string(tag_filter.key)}]) {op} ({values})")

    type_clause = ""
    if table == "resourcecontainers":
        type_clause = "| where type =~ 'microsoft.resources/subscriptions/resourcegroups'\n"
    return (
        f"{table}\n"
        f"{type_clause}"
        "| extend tagsLower = parse_json(tolower(tostring(tags)))\n"
        f"| where {' and '.join(conditions)}\n"
        "| project id = tolower(id)"
    )

def filter_by_tags(records: Iterable, tagged_resource_group_ids, tagged_resource_ids) -> List:
    """Keeps records living in a tagged resource group or being a tagged resource."""
    rg_ids = {i.lower() for i in tagged_resource_group_ids}
    resource_ids = {i.lower() for i in tagged_resource_ids}
    kept = []
    for record in records:
        if (record.id or '').lower() in resource_ids:
            kept.append(record)
            continue
        rg_path = resource_group_path(record.subscription_id, record.resource_group)
        if rg_path and rg_path in rg_ids:
            kept.append(record)
    return kept
