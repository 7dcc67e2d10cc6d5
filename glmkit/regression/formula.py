"""
Model specification: response, ordered predictor terms, categorical
declarations, and the intercept flag.

A Formula says WHAT goes into the model; it holds no data. The Design
looks the named variables up in a Dataset and encodes them.

Two ways to build one:
    Formula.parse("y ~ age + arm + age:arm", categorical={'arm': 'placebo'})
    Formula.build('y', ['age', 'arm', ('age', 'arm')], categorical={'arm': 'placebo'})

Intercept handling follows the usual convention: present by default,
removed with "- 1" or "+ 0" in the formula string or intercept=False.
Variable names containing '+', '-' or ':' are written in backticks:
"y ~ `log-dose` + arm".
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from glmkit.core.exceptions import ValidationError

_RHS_TOKEN = re.compile(r'([+-]?)\s*((?:`[^`]*`|[^+\-`])+)')
_TERM_SPLIT = re.compile(r':(?=(?:[^`]*`[^`]*`)*[^`]*$)')
_SPECIAL = re.compile(r'[+\-:]')


@dataclass(frozen=True)
class Term:
    """
    One predictor term: a single variable, or an interaction of several.

    Attributes:
        variables: Operand names; one for a plain variable
    """
    variables: tuple[str, ...]

    def __post_init__(self):
        if not self.variables:
            raise ValidationError("Term requires at least one variable")
        for v in self.variables:
            if not isinstance(v, str) or not v.strip():
                raise ValidationError(f"Term variable names must be non-empty str, got {v!r}")
        if len(set(self.variables)) != len(self.variables):
            raise ValidationError(f"Term {':'.join(self.variables)!r} repeats a variable")

    @property
    def name(self) -> str:
        return ':'.join(self.variables)

    @property
    def is_interaction(self) -> bool:
        return len(self.variables) > 1

    @classmethod
    def parse(cls, text: str) -> Term:
        """'x' -> Term(('x',)); 'a:b' -> Term(('a', 'b')); '`log-dose`' -> Term(('log-dose',))."""
        return cls(tuple(_unquote(part) for part in _TERM_SPLIT.split(text)))

    @classmethod
    def coerce(cls, term: str | Sequence[str] | Term) -> Term:
        if isinstance(term, Term):
            return term
        if isinstance(term, str):
            return cls.parse(term)
        return cls(tuple(term))

    def __str__(self) -> str:
        return ':'.join(_quote(v) for v in self.variables)


@dataclass(frozen=True)
class Formula:
    """
    Immutable model specification.

    Attributes:
        response: Response variable name
        terms: Ordered predictor terms
        categorical: Variables declared categorical -> reference level
                     (None means the lowest observed level)
        intercept: Whether column 0 of the design is an intercept
    """
    response: str
    terms: tuple[Term, ...]
    categorical: dict[str, Any] = field(default_factory=dict)
    intercept: bool = True

    @classmethod
    def build(
        cls,
        response: str,
        predictors: Iterable[str | Sequence[str] | Term] = (),
        *,
        categorical: Mapping[str, Any] | Iterable[str] | None = None,
        intercept: bool = True,
    ) -> Formula:
        """
        Build and validate a Formula from parts.

        Args:
            response: Response variable name
            predictors: Terms in order; 'a:b' strings or (a, b) tuples
                        are interactions
            categorical: Mapping of variable -> reference level, or an
                         iterable of names (reference = lowest level)
            intercept: Include an intercept column

        Raises:
            ValidationError: On an empty model, duplicated terms, the
                response used as a predictor, or a categorical
                declaration for a variable no term uses
        """
        if not isinstance(response, str) or not response.strip():
            raise ValidationError(f"response must be a non-empty str, got {response!r}")
        response = response.strip()

        terms = tuple(Term.coerce(t) for t in predictors)
        seen: set[frozenset[str]] = set()
        for term in terms:
            key = frozenset(term.variables)
            if key in seen:
                raise ValidationError(f"Term {term.name!r} appears more than once")
            seen.add(key)
            if response in term.variables:
                raise ValidationError(
                    f"Response {response!r} cannot also be a predictor (term {term.name!r})"
                )

        if not terms and not intercept:
            raise ValidationError("Model has no columns: no terms and no intercept")

        cat = _normalize_categorical(categorical)
        if response in cat:
            raise ValidationError(
                f"Response {response!r} cannot be declared categorical; "
                f"code it numerically (0/1 for binomial)"
            )
        used = {v for term in terms for v in term.variables}
        unused = [name for name in cat if name not in used]
        if unused:
            raise ValidationError(
                f"Categorical declarations for variables not in the model: {unused}"
            )

        return cls(response=response, terms=terms, categorical=cat, intercept=intercept)

    @classmethod
    def parse(
        cls,
        text: str,
        *,
        categorical: Mapping[str, Any] | Iterable[str] | None = None,
    ) -> Formula:
        """
        Parse 'y ~ a + b + a:b'. '- 1' or '+ 0' drops the intercept,
        '+ 1' keeps it.
        """
        if text.count('~') != 1:
            raise ValidationError(f"Formula must contain exactly one '~': {text!r}")
        lhs, rhs = (side.strip() for side in text.split('~'))
        lhs = _unquote(lhs)
        if not lhs:
            raise ValidationError(f"Formula has no response: {text!r}")
        if not rhs:
            raise ValidationError(f"Formula has no right-hand side: {text!r}")

        intercept = True
        predictors: list[Term] = []
        consumed = 0
        for match in _RHS_TOKEN.finditer(rhs):
            if rhs[consumed:match.start()].strip():
                raise ValidationError(f"Cannot parse formula right-hand side: {rhs!r}")
            consumed = match.end()
            sign, token = match.group(1), match.group(2).strip()
            if token in ('0', '1'):
                intercept = (token == '1') != (sign == '-')
            elif sign == '-':
                raise ValidationError(
                    f"Term removal is only supported for the intercept: '-{token}'. "
                    f"Quote names containing '+', '-' or ':' in backticks"
                )
            else:
                predictors.append(Term.parse(token))
        if rhs[consumed:].strip():
            raise ValidationError(f"Cannot parse formula right-hand side: {rhs!r}")

        return cls.build(lhs, predictors, categorical=categorical, intercept=intercept)

    @property
    def predictor_variables(self) -> tuple[str, ...]:
        """Distinct predictor operand names in first-use order."""
        names: dict[str, None] = {}
        for term in self.terms:
            for v in term.variables:
                names.setdefault(v, None)
        return tuple(names)

    @property
    def variables(self) -> tuple[str, ...]:
        """Every referenced variable: the response, then predictor operands."""
        return (self.response,) + self.predictor_variables

    def is_categorical(self, name: str) -> bool:
        return name in self.categorical

    def __hash__(self) -> int:
        # reference levels may be unhashable; the declared names suffice
        return hash((self.response, self.terms, tuple(sorted(self.categorical)), self.intercept))

    def __str__(self) -> str:
        rhs = [str(t) for t in self.terms]
        if not self.intercept:
            rhs.append('- 1')
        elif not rhs:
            rhs.append('1')
        return f"{_quote(self.response)} ~ " + ' + '.join(rhs).replace('+ - 1', '- 1')


def _normalize_categorical(
    categorical: Mapping[str, Any] | Iterable[str] | None,
) -> dict[str, Any]:
    if categorical is None:
        return {}
    if isinstance(categorical, Mapping):
        return dict(categorical)
    if isinstance(categorical, str):
        return {categorical: None}
    return {name: None for name in categorical}


def _quote(name: str) -> str:
    return f"`{name}`" if _SPECIAL.search(name) else name


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] == '`':
        return text[1:-1]
    return text
