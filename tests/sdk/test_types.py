"""Unit tests for hrana_sdk.types — statements and results."""

from dataclasses import dataclass

import pytest
from pydantic import BaseModel

from hrana_sdk.exceptions import MisuseError, ServerError
from hrana_sdk.types import BatchResult, ResultSet, Row, Statement, StepError, StepOutcome


class TestStatement:
    def test_defaults_to_no_args(self) -> None:
        stmt = Statement("SELECT 1")
        assert stmt.args == ()
        assert stmt.positional_args == ()
        assert dict(stmt.named_args) == {}

    def test_positional_args_stored_as_tuple(self) -> None:
        values = [1, "a"]
        stmt = Statement("SELECT ?, ?", values)
        values.append(3)
        assert stmt.args == (1, "a")
        assert stmt.positional_args == (1, "a")
        assert dict(stmt.named_args) == {}

    def test_named_args_are_read_only(self) -> None:
        stmt = Statement("SELECT :x", {"x": 1})
        assert dict(stmt.named_args) == {"x": 1}
        assert stmt.positional_args == ()
        with pytest.raises(TypeError):
            stmt.args["x"] = 2  # type: ignore[index]

    def test_rejects_scalar_args(self) -> None:
        with pytest.raises(MisuseError):
            Statement("SELECT ?", "abc")

    def test_rejects_non_string_sql(self) -> None:
        with pytest.raises(MisuseError):
            Statement(42)  # type: ignore[arg-type]

    def test_coerce(self) -> None:
        stmt = Statement("SELECT 1")
        assert Statement.coerce(stmt) is stmt
        assert Statement.coerce("SELECT 2") == Statement("SELECT 2")
        assert Statement.coerce(("SELECT ?", [3])) == Statement("SELECT ?", (3,))

    def test_coerce_rejects_garbage(self) -> None:
        with pytest.raises(MisuseError):
            Statement.coerce(123)  # type: ignore[arg-type]


class TestRow:
    def test_access_by_name_and_index(self) -> None:
        row = Row(("id", "name"), [1, "alice"])
        assert row["id"] == 1
        assert row["name"] == "alice"
        assert row[1] == "alice"
        assert list(row) == ["id", "name"]
        assert len(row) == 2

    def test_duplicate_columns_resolve_to_first(self) -> None:
        row = Row(("x", "x"), [1, 2])
        assert row["x"] == 1
        assert row[1] == 2
        assert row.values_tuple == (1, 2)
        assert row.as_dict() == {"x": 1}

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            Row(("a", "b"), [1])

    def test_equality(self) -> None:
        assert Row(("a",), [1]) == Row(("a",), [1])
        assert Row(("a",), [1]) != Row(("a",), [2])
        assert Row(("a",), [1]) == {"a": 1}
        assert hash(Row(("a",), [1])) == hash(Row(("a",), [1]))


@dataclass
class UserRecord:
    id: int
    name: str


class UserModel(BaseModel):
    id: int
    name: str


class TestResultSet:
    @pytest.fixture
    def result(self) -> ResultSet:
        columns = ("id", "name")
        return ResultSet(
            columns=columns,
            rows=(Row(columns, [1, "alice"]), Row(columns, [2, "bob"])),
            rows_affected=0,
        )

    def test_first_and_scalar(self, result: ResultSet) -> None:
        assert result.first == {"id": 1, "name": "alice"}
        assert result.scalar == 1
        assert len(result) == 2

    def test_empty(self) -> None:
        result = ResultSet()
        assert result.first is None
        assert result.scalar is None
        assert list(result) == []

    def test_to_models_dataclass(self, result: ResultSet) -> None:
        users = result.to_models(UserRecord)
        assert users == [UserRecord(1, "alice"), UserRecord(2, "bob")]

    def test_to_models_pydantic(self, result: ResultSet) -> None:
        users = result.to_models(UserModel)
        assert [u.name for u in users] == ["alice", "bob"]
        assert isinstance(users[0], UserModel)

    def test_to_models_rejects_other_types(self, result: ResultSet) -> None:
        with pytest.raises(MisuseError):
            result.to_models(dict)


class TestBatchResult:
    def test_outcome_flags(self) -> None:
        ok = StepOutcome(result=ResultSet())
        failed = StepOutcome(error=StepError("boom"))
        skipped = StepOutcome()

        assert ok.is_ok and not ok.is_error and not ok.skipped
        assert failed.is_error and not failed.is_ok
        assert skipped.skipped

    def test_results_and_errors(self) -> None:
        error = StepError("no such table: t", code="SQLITE_ERROR")
        batch = BatchResult((StepOutcome(result=ResultSet()), StepOutcome(error=error), StepOutcome()))

        assert len(batch) == 3
        assert not batch.is_ok
        assert batch.results == [ResultSet(), None, None]
        assert batch.errors == [None, error, None]
        assert batch[1].error is error

    def test_raise_for_error(self) -> None:
        batch = BatchResult((StepOutcome(error=StepError("boom", code="E1")),))
        with pytest.raises(ServerError, match="boom") as exc_info:
            batch.raise_for_error()
        assert exc_info.value.code == "E1"

    def test_raise_for_error_returns_self(self) -> None:
        batch = BatchResult((StepOutcome(result=ResultSet()),))
        assert batch.raise_for_error() is batch
