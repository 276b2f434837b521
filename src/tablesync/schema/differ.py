"""
Diff engine.

Compares live and desired table definitions aspect by aspect. Every
function returns structured ``Mismatch`` records; text is produced only
when a ``Diff`` is rendered.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from ..config import TTLSpec
from ..database.introspection import LiveTTL


class Aspect(str, Enum):
    """The part of a table definition a mismatch is about."""

    MISSING_TABLE = "missing table"
    ATTRIBUTE_DEFINITIONS = "attribute definitions"
    KEY_SCHEMA = "key schema"
    LOCAL_INDEXES = "local secondary indexes"
    THROUGHPUT = "provisioned throughput"
    MISSING_INDEX = "missing index"
    INDEX_NAME = "index name"
    INDEX_KEY_SCHEMA = "index key schema"
    INDEX_PROJECTION = "index projection"
    INDEX_THROUGHPUT = "index provisioned throughput"
    MISSING_TTL = "missing ttl"
    TTL = "time to live"

    @property
    def is_missing(self) -> bool:
        return self in (Aspect.MISSING_TABLE, Aspect.MISSING_INDEX, Aspect.MISSING_TTL)


@dataclass(frozen=True)
class Mismatch:
    """A single difference between the live and the desired definition."""

    aspect: Aspect
    subject: Optional[str] = None
    expected: Any = None
    actual: Any = None

    def render(self) -> str:
        if self.aspect.is_missing:
            return f"{self.aspect.value}: {self.subject}"

        label = self.aspect.value
        if self.subject:
            label += f" [{self.subject}]"
        return f"{label}: expected {_fmt(self.expected)}, actual {_fmt(self.actual)}"


def _fmt(value: Any) -> str:
    if value is None:
        return "<absent>"
    return str(value)


@dataclass
class Diff:
    """Ordered collection of mismatches for one table."""

    mismatches: List[Mismatch] = field(default_factory=list)

    def add(self, mismatch: Mismatch) -> None:
        self.mismatches.append(mismatch)

    def extend(self, mismatches: Iterable[Mismatch]) -> None:
        self.mismatches.extend(mismatches)

    def has(self, aspect: Aspect) -> bool:
        return any(m.aspect == aspect for m in self.mismatches)

    @property
    def aspects(self) -> List[Aspect]:
        return [m.aspect for m in self.mismatches]

    def render(self, separator: str = "; ") -> str:
        """Render all mismatches as human-readable text."""
        return separator.join(m.render() for m in self.mismatches)

    def __bool__(self) -> bool:
        return bool(self.mismatches)

    def __len__(self) -> int:
        return len(self.mismatches)

    def __iter__(self) -> Iterator[Mismatch]:
        return iter(self.mismatches)

    def __str__(self) -> str:
        return self.render()


def _attribute_map(definitions: Sequence[Mapping[str, str]]) -> Dict[str, str]:
    return {d["AttributeName"]: d["AttributeType"] for d in definitions}


def diff_attribute_definitions(
    live: Sequence[Mapping[str, str]], desired: Sequence[Mapping[str, str]]
) -> List[Mismatch]:
    """Compare attribute definitions as a set keyed by attribute name."""
    live_types = _attribute_map(live)
    desired_types = _attribute_map(desired)

    mismatches = []
    for name in sorted(set(live_types) | set(desired_types)):
        if live_types.get(name) != desired_types.get(name):
            mismatches.append(
                Mismatch(
                    Aspect.ATTRIBUTE_DEFINITIONS,
                    subject=name,
                    expected=desired_types.get(name),
                    actual=live_types.get(name),
                )
            )
    return mismatches


def _format_key_schema(key_schema: Sequence[Mapping[str, str]]) -> str:
    return ", ".join(f"{k['AttributeName']} {k['KeyType']}" for k in key_schema)


def diff_key_schema(
    live: Sequence[Mapping[str, str]],
    desired: Sequence[Mapping[str, str]],
    aspect: Aspect = Aspect.KEY_SCHEMA,
    subject: Optional[str] = None,
) -> List[Mismatch]:
    """Compare key schemas positionally (HASH first, then RANGE)."""
    live_keys = [(k["AttributeName"], k["KeyType"]) for k in live]
    desired_keys = [(k["AttributeName"], k["KeyType"]) for k in desired]
    if live_keys == desired_keys:
        return []
    return [
        Mismatch(
            aspect,
            subject=subject,
            expected=_format_key_schema(desired),
            actual=_format_key_schema(live),
        )
    ]


def _format_projection(projection_type: Optional[str], attributes: List[str]) -> str:
    if not attributes:
        return str(projection_type)
    return f"{projection_type} ({', '.join(attributes)})"


def diff_projection(
    live: Optional[Mapping[str, Any]],
    desired: Optional[Mapping[str, Any]],
    subject: Optional[str] = None,
) -> List[Mismatch]:
    """Compare projection type verbatim and non-key attributes as a set."""
    live = live or {}
    desired = desired or {}
    live_type = live.get("ProjectionType")
    desired_type = desired.get("ProjectionType")
    live_attributes = sorted(set(live.get("NonKeyAttributes") or []))
    desired_attributes = sorted(set(desired.get("NonKeyAttributes") or []))

    if live_type == desired_type and live_attributes == desired_attributes:
        return []
    return [
        Mismatch(
            Aspect.INDEX_PROJECTION,
            subject=subject,
            expected=_format_projection(desired_type, desired_attributes),
            actual=_format_projection(live_type, live_attributes),
        )
    ]


def _throughput_pair(throughput: Optional[Mapping[str, Any]]) -> tuple:
    throughput = throughput or {}
    return (
        throughput.get("ReadCapacityUnits", 0),
        throughput.get("WriteCapacityUnits", 0),
    )


def diff_provisioned_throughput(
    live: Optional[Mapping[str, Any]],
    desired: Optional[Mapping[str, Any]],
    aspect: Aspect = Aspect.THROUGHPUT,
    subject: Optional[str] = None,
) -> List[Mismatch]:
    """Compare only the (read, write) capacity pair.

    Bookkeeping fields the service reports (decrease counters, timestamps)
    are ignored.
    """
    live_pair = _throughput_pair(live)
    desired_pair = _throughput_pair(desired)
    if live_pair == desired_pair:
        return []
    return [
        Mismatch(
            aspect,
            subject=subject,
            expected=f"read={desired_pair[0]}, write={desired_pair[1]}",
            actual=f"read={live_pair[0]}, write={live_pair[1]}",
        )
    ]


def diff_index_name(live: Optional[str], desired: Optional[str]) -> List[Mismatch]:
    if live == desired:
        return []
    return [Mismatch(Aspect.INDEX_NAME, subject=desired, expected=desired, actual=live)]


def diff_local_secondary_indexes(
    live: Sequence[Mapping[str, Any]], desired: Sequence[Mapping[str, Any]]
) -> List[Mismatch]:
    """Compare local secondary indexes by name, key schema and projection.

    Local indexes only exist from table creation, so every mismatch here is
    one the service cannot apply in place.
    """
    live_by_name = {index["IndexName"]: index for index in live}
    desired_by_name = {index["IndexName"]: index for index in desired}

    mismatches = []
    for name in sorted(set(live_by_name) | set(desired_by_name)):
        live_index = live_by_name.get(name)
        desired_index = desired_by_name.get(name)
        if live_index is None or desired_index is None:
            mismatches.append(
                Mismatch(
                    Aspect.LOCAL_INDEXES,
                    subject=name,
                    expected="present" if desired_index else None,
                    actual="present" if live_index else None,
                )
            )
            continue

        if diff_key_schema(live_index["KeySchema"], desired_index["KeySchema"]):
            mismatches.append(
                Mismatch(
                    Aspect.LOCAL_INDEXES,
                    subject=name,
                    expected=_format_key_schema(desired_index["KeySchema"]),
                    actual=_format_key_schema(live_index["KeySchema"]),
                )
            )
            continue

        for projection in diff_projection(
            live_index.get("Projection"), desired_index.get("Projection")
        ):
            mismatches.append(
                Mismatch(
                    Aspect.LOCAL_INDEXES,
                    subject=name,
                    expected=projection.expected,
                    actual=projection.actual,
                )
            )
    return mismatches


def _ttl_status(enabled: bool) -> str:
    return "ENABLED" if enabled else "DISABLED"


def diff_ttl(live: Optional[LiveTTL], desired: TTLSpec) -> List[Mismatch]:
    """Compare the declared TTL with the service's description.

    Transitional states count as the state they are moving to.
    """
    if live is None or not live.is_configured:
        if desired.enabled:
            return [Mismatch(Aspect.MISSING_TTL, subject=desired.attribute_name)]
        return []

    expected = (desired.attribute_name, _ttl_status(desired.enabled))
    actual = (live.attribute_name, _ttl_status(live.enabled))
    if not desired.enabled and not live.enabled:
        return []
    if expected == actual:
        return []
    return [
        Mismatch(
            Aspect.TTL,
            subject=desired.attribute_name,
            expected=f"{expected[0]} {expected[1]}",
            actual=f"{actual[0]} {actual[1]}",
        )
    ]


@dataclass
class IndexDiffResult:
    """Outcome of comparing global secondary indexes.

    ``updates`` holds ``GlobalSecondaryIndexUpdates`` elements, one per
    request to send.
    """

    diff: Diff = field(default_factory=Diff)
    updates: List[Dict[str, Any]] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    unsupported: bool = False

    @property
    def can_migrate(self) -> bool:
        return not self.unsupported


def diff_global_secondary_indexes(
    live: Sequence[Mapping[str, Any]], desired: Sequence[Mapping[str, Any]]
) -> IndexDiffResult:
    """Compare global secondary indexes.

    A missing index produces a ``Create`` update and a throughput-only
    change produces an ``Update``. A changed key schema or projection is
    recorded but produces no update and marks the result unsupported.
    Live indexes absent from the desired list are ignored.
    """
    result = IndexDiffResult()
    if not live and not desired:
        return result

    live_by_name = {index["IndexName"]: index for index in live}

    for desired_index in desired:
        name = desired_index["IndexName"]
        live_index = live_by_name.get(name)

        if live_index is None:
            result.diff.add(Mismatch(Aspect.MISSING_INDEX, subject=name))
            result.missing.append(name)
            result.updates.append(
                {
                    "Create": {
                        "IndexName": name,
                        "KeySchema": [dict(k) for k in desired_index["KeySchema"]],
                        "Projection": {
                            "ProjectionType": desired_index["Projection"]["ProjectionType"],
                            "NonKeyAttributes": list(
                                desired_index["Projection"].get("NonKeyAttributes", [])
                            ),
                        },
                        "ProvisionedThroughput": dict(
                            desired_index["ProvisionedThroughput"]
                        ),
                    }
                }
            )
            continue

        result.diff.extend(diff_index_name(live_index.get("IndexName"), name))

        structural = diff_key_schema(
            live_index.get("KeySchema", []),
            desired_index["KeySchema"],
            aspect=Aspect.INDEX_KEY_SCHEMA,
            subject=name,
        ) + diff_projection(
            live_index.get("Projection"), desired_index.get("Projection"), subject=name
        )
        throughput = diff_provisioned_throughput(
            live_index.get("ProvisionedThroughput"),
            desired_index.get("ProvisionedThroughput"),
            aspect=Aspect.INDEX_THROUGHPUT,
            subject=name,
        )
        result.diff.extend(structural)
        result.diff.extend(throughput)

        if structural:
            result.unsupported = True
        elif throughput:
            result.updates.append(
                {
                    "Update": {
                        "IndexName": name,
                        "ProvisionedThroughput": dict(
                            desired_index["ProvisionedThroughput"]
                        ),
                    }
                }
            )

    return result
