"""
Tagged parse results and ordered matcher chains.

Every field normalizer is a tuple of named matchers tried in sequence. The
first matcher returning Parsed wins; if none does, the Unparsed results are
folded into one reason string. The tuple order is the priority order.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T
    matcher: str = ""


@dataclass(frozen=True)
class Unparsed:
    reason: str


ParseResult = Union[Parsed[T], Unparsed]

NO_MATCH = Unparsed("no match")


@dataclass(frozen=True)
class Matcher(Generic[T]):
    """A named parsing step. fn returns Parsed, or Unparsed when it does not apply."""

    name: str
    fn: Callable[..., "ParseResult[T]"]

    def __call__(self, text: str, *args) -> "ParseResult[T]":
        result = self.fn(text, *args)
        if isinstance(result, Parsed) and not result.matcher:
            return Parsed(result.value, self.name)
        return result


def run_matchers(matchers: Sequence[Matcher[T]], text: str, *args) -> "ParseResult[T]":
    """Try each matcher in order; return the first Parsed result."""
    reasons = []
    for matcher in matchers:
        result = matcher(text, *args)
        if isinstance(result, Parsed):
            return result
        if result is not NO_MATCH:
            reasons.append(f"{matcher.name}: {result.reason}")
    if reasons:
        return Unparsed("; ".join(reasons))
    return Unparsed(f"no matcher recognised {text!r}")

