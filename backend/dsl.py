"""Parser for the asset filter language.

    query      := bare_group | predicate
    bare_group := [a-z_]+
    predicate  := group "." field OP value
    OP         := like | is | == | >= | <= | > | < | !=

Parsing is purely syntactic. Whether an operator suits a field's value type
is only decided when the query runs against the catalog, so generated text
can be checked here before any schema lookup.
"""
import re
from dataclasses import dataclass

from errors import ParseError

# Checked in this order, so "<=" wins over "<"
OPERATORS = ("like", "is", "==", ">=", "<=", ">", "<", "!=")
WORD_OPERATORS = {"like", "is"}

BARE_GROUP = re.compile(r"^[a-z_]+$")


@dataclass(frozen=True)
class Predicate:
    field: str
    operator: str
    value: str


@dataclass(frozen=True)
class ParsedQuery:
    group: str
    field: str | None = None
    operator: str | None = None
    value: str | None = None

    @property
    def predicate(self) -> Predicate | None:
        if self.field is None:
            return None
        return Predicate(self.field, self.operator, self.value)


def _operator_position(text: str, op: str) -> int:
    if op in WORD_OPERATORS:
        # Whole words only: "is" must not fire inside "distance" or "is_sold"
        match = re.search(rf"(?<!\S){op}(?!\S)", text)
        return match.start() if match else -1
    return text.find(op)


def find_operator(text: str) -> tuple[str, int] | None:
    """Return the highest-priority operator in text and where it starts."""
    # Anything after the opening quote is literal value
    head = text.split("'", 1)[0]
    for op in OPERATORS:
        position = _operator_position(head, op)
        if position >= 0:
            return op, position
    return None


def _strip_quotes(value: str) -> str:
    return re.sub(r"^'|'$", "", value)


def parse_query(text: str) -> ParsedQuery:
    trimmed = (text or "").strip()
    found = find_operator(trimmed)

    if found is None and BARE_GROUP.match(trimmed):
        return ParsedQuery(group=trimmed)

    if "." not in trimmed and not BARE_GROUP.match(trimmed):
        raise ParseError(
            "invalid characters",
            "Invalid characters in query. Only lowercase letters and underscores are allowed for simple queries.",
        )

    if found is None:
        raise ParseError(
            "invalid operator",
            "Invalid operator. Only " + ", ".join(f"'{op}'" for op in OPERATORS) + " are supported.",
        )

    op, position = found
    left = trimmed[:position].strip()
    right = trimmed[position + len(op):].strip()
    if not left or not right:
        raise ParseError(
            "missing operand",
            "Invalid query format. Both sides of the operator must contain values.",
        )

    parts = [part.strip() for part in left.split(".")]
    if len(parts) != 2 or not all(parts):
        raise ParseError(
            "invalid field reference",
            "Invalid field reference. Must use the format 'group.field' with exactly one dot.",
        )

    group, field = parts
    return ParsedQuery(group=group, field=field, operator=op, value=_strip_quotes(right))
