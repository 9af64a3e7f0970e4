"""
Type definitions for Hrana SDK statements and results.

Provides strongly-typed wrappers around statements sent to the server and the
results it returns, instead of raw dicts.
"""

import dataclasses
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar, Union

from pydantic import BaseModel

from .exceptions import MisuseError, ServerError

T = TypeVar("T")

StatementArgs = Union[Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class Statement:
    """
    A single SQL statement with its parameters.

    Attributes:
        sql: SQL text
        args: Positional values (stored as a tuple) or named values
              (stored as a read-only mapping)
    """

    sql: str
    args: StatementArgs = ()

    def __post_init__(self) -> None:
        if not isinstance(self.sql, str):
            raise MisuseError(f"Statement SQL must be a string, got {type(self.sql).__name__}")
        if isinstance(self.args, Mapping):
            object.__setattr__(self, "args", MappingProxyType(dict(self.args)))
        elif isinstance(self.args, (str, bytes)):
            raise MisuseError("Statement args must be a sequence or a mapping, not a scalar")
        else:
            object.__setattr__(self, "args", tuple(self.args))

    @property
    def positional_args(self) -> tuple[Any, ...]:
        """Positional values, empty when the statement uses named args."""
        if isinstance(self.args, Mapping):
            return ()
        return self.args  # type: ignore[return-value]

    @property
    def named_args(self) -> Mapping[str, Any]:
        """Named values, empty when the statement uses positional args."""
        if isinstance(self.args, Mapping):
            return self.args
        return MappingProxyType({})

    @classmethod
    def coerce(cls, value: "StatementLike") -> "Statement":
        """Build a Statement from a Statement, a SQL string or a ``(sql, args)`` tuple."""
        if isinstance(value, Statement):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
            return cls(value[0], value[1])
        raise MisuseError(f"Cannot build a statement from {value!r}")


StatementLike = Union[Statement, str, tuple[str, StatementArgs]]


class Row(Mapping[str, Any]):
    """
    A single result row.

    Keyed by column name; a positional index is accepted as well.
    """

    __slots__ = ("_columns", "_values", "_index")

    def __init__(self, columns: tuple[str, ...], values: Sequence[Any]):
        if len(columns) != len(values):
            raise ValueError(f"Row has {len(values)} values for {len(columns)} columns")
        self._columns = columns
        self._values = tuple(values)
        # Duplicate column names resolve to the first occurrence.
        self._index: dict[str, int] = {}
        for i, name in enumerate(columns):
            self._index.setdefault(name, i)

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self._values[key]
        return self._values[self._index[key]]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._columns == other._columns and self._values == other._values
        return super().__eq__(other)

    def __hash__(self) -> int:
        return hash((self._columns, self._values))

    def __repr__(self) -> str:
        return f"Row({self.as_dict()!r})"

    @property
    def values_tuple(self) -> tuple[Any, ...]:
        """Row values in column order."""
        return self._values

    def as_dict(self) -> dict[str, Any]:
        """Return the row as a plain dict."""
        return {name: self._values[i] for name, i in self._index.items()}


@dataclass(frozen=True)
class ResultSet:
    """
    Result of a single executed statement.

    Attributes:
        columns: Column names in order
        rows: Result rows in order
        rows_affected: Number of rows changed by the statement
        last_insert_rowid: Row id of the last inserted row, if any
        decltypes: Declared column types as reported by the server
    """

    columns: tuple[str, ...] = ()
    rows: tuple[Row, ...] = ()
    rows_affected: int = 0
    last_insert_rowid: int | None = None
    decltypes: tuple[str | None, ...] = ()

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def first(self) -> Row | None:
        """Get first row or None."""
        return self.rows[0] if self.rows else None

    @property
    def scalar(self) -> Any:
        """Get the first column of the first row, or None."""
        row = self.first
        if row is None or not self.columns:
            return None
        return row[0]

    def to_models(self, model: type[T]) -> list[T]:
        """
        Convert every row into ``model``.

        Args:
            model: A Pydantic model or a dataclass type

        Returns:
            One instance per row, in row order

        Usage:
            @dataclass
            class User:
                id: int
                name: str

            users = result.to_models(User)
        """
        return [_convert_row(row, model) for row in self.rows]


def _convert_row(row: Row, model: type[T]) -> T:
    """Convert a row to the target type."""
    if isinstance(model, type) and issubclass(model, BaseModel):
        return model.model_validate(row.as_dict())  # type: ignore[return-value]

    if dataclasses.is_dataclass(model) and isinstance(model, type):
        return model(**row.as_dict())

    raise MisuseError(f"Cannot convert rows to {model!r}: expected a Pydantic model or a dataclass")


@dataclass(frozen=True)
class StepError:
    """Error reported by the server for one batch step or statement."""

    message: str
    code: str | None = None

    def to_exception(self, sql: str | None = None) -> ServerError:
        """Build the ServerError matching this step error."""
        return ServerError(self.message, code=self.code, sql=sql)


@dataclass(frozen=True)
class StepOutcome:
    """
    Outcome of one statement in a batch.

    ``result`` and ``error`` are both None when the server skipped the step
    (its condition evaluated to false).
    """

    result: ResultSet | None = None
    error: StepError | None = None

    @property
    def is_ok(self) -> bool:
        """Check if the step produced a result."""
        return self.result is not None

    @property
    def is_error(self) -> bool:
        """Check if the step failed."""
        return self.error is not None

    @property
    def skipped(self) -> bool:
        """Check if the server did not run the step."""
        return self.result is None and self.error is None


@dataclass(frozen=True)
class BatchResult:
    """
    Result of a batch: one outcome per submitted statement, in submission order.
    """

    outcomes: tuple[StepOutcome, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[StepOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __getitem__(self, index: int) -> StepOutcome:
        return self.outcomes[index]

    @property
    def is_ok(self) -> bool:
        """Check if no step failed."""
        return not any(o.is_error for o in self.outcomes)

    @property
    def results(self) -> list[ResultSet | None]:
        """Per-step results (None for failed or skipped steps)."""
        return [o.result for o in self.outcomes]

    @property
    def errors(self) -> list[StepError | None]:
        """Per-step errors (None for successful or skipped steps)."""
        return [o.error for o in self.outcomes]

    def raise_for_error(self) -> "BatchResult":
        """Raise ServerError for the first failed step; return self otherwise."""
        for outcome in self.outcomes:
            if outcome.error is not None:
                raise outcome.error.to_exception()
        return self
