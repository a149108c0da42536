"""WIQL query construction for work item search.

Each optional search filter contributes at most one predicate. Predicates
are plain immutable values; the query text is rendered from the list in
one place so escaping and composition stay together.

Values are interpolated as WIQL string literals with embedded single
quotes doubled. No other sanitization is applied.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

logger = logging.getLogger("azdo-mcp.query_builder")

DEFAULT_SEARCH_FIELDS: tuple[str, ...] = (
    "System.Id",
    "System.Title",
    "System.State",
    "System.WorkItemType",
    "System.AssignedTo",
    "System.Tags",
    "System.CreatedDate",
    "System.ChangedDate",
    "System.ChangedBy",
)
DEFAULT_ORDER_FIELD = "System.ChangedDate"
DEFAULT_ORDER_DIRECTION = "DESC"

_WORK_ITEM_ID_RE = re.compile(r"[0-9]+")


def escape_wiql(value: str) -> str:
    """Double single quotes so ``value`` can sit inside a WIQL string literal."""
    return value.replace("'", "''")


@dataclass(frozen=True)
class Predicate:
    """One ``[Field] OP value`` comparison.

    ``value`` is stored already escaped. Numeric comparisons set
    ``quoted=False`` and are rendered bare.
    """

    field: str
    operator: str
    value: str
    quoted: bool = True

    @classmethod
    def literal(cls, field: str, operator: str, raw: str) -> "Predicate":
        return cls(field=field, operator=operator, value=escape_wiql(raw))

    def render(self) -> str:
        value = f"'{self.value}'" if self.quoted else self.value
        return f"[{self.field}] {self.operator} {value}"


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of predicates, rendered in parentheses."""

    predicates: tuple[Predicate, ...]

    def render(self) -> str:
        return "(" + " OR ".join(p.render() for p in self.predicates) + ")"


Clause = Union[Predicate, AnyOf]


@dataclass(frozen=True)
class SearchQuery:
    """Rendered WIQL plus the request options it needs."""

    wiql: str
    clauses: tuple[Clause, ...] = field(default_factory=tuple)
    time_precision: bool = False


def split_tags(tags: Optional[str]) -> list[str]:
    """Split a semicolon-delimited tag string, dropping blanks."""
    if not tags:
        return []
    return [t.strip() for t in tags.split(";") if t.strip()]


def text_clause(query: str) -> AnyOf:
    """Free text matches title or description, and the ID when all ASCII digits."""
    predicates = [
        Predicate.literal("System.Title", "CONTAINS", query),
        Predicate.literal("System.Description", "CONTAINS", query),
    ]
    if _WORK_ITEM_ID_RE.fullmatch(query):
        predicates.append(Predicate("System.Id", "=", query, quoted=False))
    return AnyOf(tuple(predicates))


def tags_clause(tags: list[str]) -> AnyOf:
    """Item matches when it carries any of ``tags``."""
    return AnyOf(tuple(Predicate.literal("System.Tags", "CONTAINS", tag) for tag in tags))


def build_clauses(
    project: str,
    query: Optional[str] = None,
    work_item_type: Optional[str] = None,
    state: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tags: Optional[str] = None,
    created_after: Optional[str] = None,
    updated_after: Optional[str] = None,
) -> list[Clause]:
    """Build the conjunction of search clauses.

    The project-scope predicate is always first; every other filter is
    added only when supplied.
    """
    clauses: list[Clause] = [Predicate.literal("System.TeamProject", "=", project)]

    if work_item_type:
        clauses.append(Predicate.literal("System.WorkItemType", "=", work_item_type))
    if state:
        clauses.append(Predicate.literal("System.State", "=", state))
    if assigned_to:
        clauses.append(Predicate.literal("System.AssignedTo", "=", assigned_to))
    tag_list = split_tags(tags)
    if tag_list:
        clauses.append(tags_clause(tag_list))
    if created_after:
        clauses.append(Predicate.literal("System.CreatedDate", ">=", created_after))
    if updated_after:
        clauses.append(Predicate.literal("System.ChangedDate", ">=", updated_after))
    if query:
        clauses.append(text_clause(query))

    return clauses


def render_wiql(
    clauses: list[Clause],
    fields: Optional[list[str]] = None,
    order_field: str = DEFAULT_ORDER_FIELD,
    order_direction: str = DEFAULT_ORDER_DIRECTION,
) -> str:
    """Render the final WIQL text from a clause list."""
    select = ", ".join(f"[{f}]" for f in (fields or DEFAULT_SEARCH_FIELDS))
    where = " AND ".join(c.render() for c in clauses)
    return (
        f"SELECT {select} FROM WorkItems "
        f"WHERE {where} "
        f"ORDER BY [{order_field}] {order_direction}"
    )


def build_search_query(
    project: str,
    query: Optional[str] = None,
    work_item_type: Optional[str] = None,
    state: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tags: Optional[str] = None,
    created_after: Optional[str] = None,
    updated_after: Optional[str] = None,
    fields: Optional[list[str]] = None,
    order_field: Optional[str] = None,
    order_direction: Optional[str] = None,
) -> SearchQuery:
    """Compose a complete search query.

    Args:
        project: Project the search is scoped to
        query: Free text matched against title, description and ID
        work_item_type: Exact work item type
        state: Exact state
        assigned_to: Assignee display name or email
        tags: Semicolon-delimited tags, any of which must match
        created_after: ISO 8601 lower bound on creation
        updated_after: ISO 8601 lower bound on last change
        fields: Fields to select (defaults to DEFAULT_SEARCH_FIELDS)
        order_field: Field to sort on
        order_direction: 'ASC' or 'DESC'

    Returns:
        SearchQuery with the WIQL text. ``time_precision`` is set when a
        date bound includes a time part, which WIQL only honors with
        the matching query option.
    """
    clauses = build_clauses(
        project,
        query=query,
        work_item_type=work_item_type,
        state=state,
        assigned_to=assigned_to,
        tags=tags,
        created_after=created_after,
        updated_after=updated_after,
    )
    wiql = render_wiql(
        clauses,
        fields=fields,
        order_field=order_field or DEFAULT_ORDER_FIELD,
        order_direction=order_direction or DEFAULT_ORDER_DIRECTION,
    )
    time_precision = any("T" in (v or "") for v in (created_after, updated_after))
    logger.debug(f"Built WIQL: {wiql}")
    return SearchQuery(wiql=wiql, clauses=tuple(clauses), time_precision=time_precision)
