"""Label selectors in the syntax accepted by Kubernetes list operations."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

_NAME = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

_KEY = r"[^\s!=<>(),]+"
_SET_TERM = re.compile(rf"^(?P<key>{_KEY})\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_NOT_TERM = re.compile(rf"^!\s*(?P<key>{_KEY})$")
_CMP_TERM = re.compile(rf"^(?P<key>{_KEY})\s*(?P<op>==|=|!=|>|<)\s*(?P<value>[^\s!=<>(),]*)$")
_EXISTS_TERM = re.compile(rf"^(?P<key>{_KEY})$")

_SINGLE_VALUE_OPS = frozenset({"=", "!=", ">", "<"})
_SET_OPS = frozenset({"in", "notin"})
_NO_VALUE_OPS = frozenset({"exists", "!"})


def _validate_key(key: str) -> None:
    prefix, slash, name = key.rpartition("/")
    if slash and (not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN.match(prefix)):
        raise ValueError(f"invalid label key {key!r}: bad prefix")
    if not name or len(name) > 63 or not _NAME.match(name):
        raise ValueError(f"invalid label key {key!r}")


def _validate_value(value: str) -> None:
    if value and (len(value) > 63 or not _NAME.match(value)):
        raise ValueError(f"invalid label value {value!r}")


@dataclass(frozen=True)
class Requirement:
    """One condition on a label: key, operator and values."""

    key: str
    operator: str
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _validate_key(self.key)
        if self.operator in _SINGLE_VALUE_OPS:
            if len(self.values) != 1:
                raise ValueError(f"operator {self.operator!r} takes exactly one value")
        elif self.operator in _SET_OPS:
            if not self.values:
                raise ValueError(f"operator {self.operator!r} needs at least one value")
        elif self.operator in _NO_VALUE_OPS:
            if self.values:
                raise ValueError(f"operator {self.operator!r} takes no values")
        else:
            raise ValueError(f"unknown operator {self.operator!r}")
        for value in self.values:
            _validate_value(value)
        if self.operator in (">", "<"):
            try:
                int(self.values[0])
            except ValueError:
                raise ValueError(f"operator {self.operator!r} needs an integer value") from None

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        op = self.operator
        if op == "exists":
            return present
        if op == "!":
            return not present
        if op in ("!=", "notin"):
            return not present or labels[self.key] not in self.values
        if not present:
            return False
        actual = labels[self.key]
        if op in ("=", "in"):
            return actual in self.values
        try:
            number = int(actual)
        except ValueError:
            return False
        limit = int(self.values[0])
        return number > limit if op == ">" else number < limit

    def __str__(self) -> str:
        if self.operator == "exists":
            return self.key
        if self.operator == "!":
            return f"!{self.key}"
        if self.operator in _SET_OPS:
            return f"{self.key} {self.operator} ({','.join(sorted(self.values))})"
        return f"{self.key}{self.operator}{self.values[0]}"


@dataclass(frozen=True)
class Selector:
    """A conjunction of label requirements; no requirements match everything."""

    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)


def _split_terms(selector: str) -> Iterator[str]:
    depth = 0
    current: list[str] = []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced parentheses in selector {selector!r}")
        if char == "," and depth == 0:
            yield "".join(current)
            current = []
        else:
            current.append(char)
    if depth != 0:
        raise ValueError(f"unbalanced parentheses in selector {selector!r}")
    yield "".join(current)


def _parse_term(term: str) -> Requirement:
    term = term.strip()
    if not term:
        raise ValueError("empty term in label selector")
    if match := _SET_TERM.match(term):
        inner = match["values"]
        if not inner.strip():
            raise ValueError(f"empty value set in {term!r}")
        values = tuple(sorted({value.strip() for value in inner.split(",")}))
        return Requirement(match["key"], match["op"], values)
    if match := _NOT_TERM.match(term):
        return Requirement(match["key"], "!")
    if match := _CMP_TERM.match(term):
        op = "=" if match["op"] == "==" else match["op"]
        return Requirement(match["key"], op, (match["value"],))
    if match := _EXISTS_TERM.match(term):
        return Requirement(match["key"], "exists")
    raise ValueError(f"cannot parse label selector term {term!r}")


def parse(selector: str) -> Selector:
    """Parse a label selector string; raise ValueError if it is malformed."""
    if not selector.strip():
        return everything()
    requirements = [_parse_term(term) for term in _split_terms(selector)]
    return Selector(tuple(sorted(requirements, key=lambda req: req.key)))


def everything() -> Selector:
    """A selector that matches any set of labels."""
    return Selector()