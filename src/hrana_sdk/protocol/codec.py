"""
Statement codec for the Hrana protocol.

Converts statements and Python values into the JSON shapes the server
expects, and converts wire results back into ResultSet / BatchResult objects.
Both transports share the same statement and result shapes.
"""

import base64
import binascii
import math
from collections.abc import Sequence
from typing import Any

from ..exceptions import ConnectionError, MisuseError
from ..types import BatchResult, ResultSet, Row, Statement, StepError, StepOutcome

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def encode_value(value: Any) -> dict[str, Any]:
    """
    Encode a Python value as a Hrana value.

    Supported types:
    - None → null
    - bool, int → integer (decimal string, 64-bit range)
    - float → float
    - str → text
    - bytes, bytearray, memoryview → blob (base64)
    """
    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "integer", "value": "1" if value else "0"}
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise MisuseError(f"Integer {value} does not fit in 64 bits")
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MisuseError(f"Float {value} cannot be sent to the server")
        return {"type": "float", "value": value}
    if isinstance(value, str):
        return {"type": "text", "value": value}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"type": "blob", "base64": base64.b64encode(bytes(value)).decode("ascii")}
    raise MisuseError(f"Unsupported parameter type: {type(value).__name__}")


def decode_value(data: Any) -> Any:
    """Decode a Hrana value into a Python value."""
    if not isinstance(data, dict):
        raise ConnectionError(f"Malformed value from server: {data!r}")

    kind = data.get("type")
    try:
        if kind == "null":
            return None
        if kind == "integer":
            return int(data["value"])
        if kind == "float":
            return float(data["value"])
        if kind == "text":
            return str(data["value"])
        if kind == "blob":
            encoded = data.get("base64", "")
            # The server may omit padding
            encoded += "=" * (-len(encoded) % 4)
            return base64.b64decode(encoded)
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise ConnectionError(f"Malformed {kind} value from server: {data!r}") from e

    raise ConnectionError(f"Unknown value type from server: {kind!r}")


class StatementCodec:
    """
    Encodes statements and batches, decodes execute and batch results.

    Usage:
        codec = StatementCodec()
        wire = codec.encode(Statement("SELECT * FROM users WHERE id = ?", [1]))
        result = codec.decode(response["result"])
    """

    def __init__(self, want_rows: bool = True):
        self.want_rows = want_rows

    def encode(self, stmt: Statement) -> dict[str, Any]:
        """Encode a statement."""
        return {
            "sql": stmt.sql,
            "args": [encode_value(v) for v in stmt.positional_args],
            "named_args": [
                {"name": name, "value": encode_value(value)}
                for name, value in stmt.named_args.items()
            ],
            "want_rows": self.want_rows,
        }

    def encode_batch(
        self,
        stmts: Sequence[Statement],
        conditions: Sequence[dict[str, Any] | None] | None = None,
    ) -> dict[str, Any]:
        """
        Encode statements as one batch, in order.

        Args:
            stmts: Statements to run
            conditions: Optional per-step conditions (same length as stmts)
        """
        if conditions is not None and len(conditions) != len(stmts):
            raise MisuseError(f"Got {len(conditions)} conditions for {len(stmts)} statements")

        steps = []
        for i, stmt in enumerate(stmts):
            steps.append(
                {
                    "condition": conditions[i] if conditions is not None else None,
                    "stmt": self.encode(stmt),
                }
            )
        return {"steps": steps}

    def decode(self, data: Any) -> ResultSet:
        """Decode an execute result."""
        if not isinstance(data, dict):
            raise ConnectionError(f"Malformed statement result from server: {data!r}")

        cols = data.get("cols") or []
        columns = tuple(str(col.get("name") or "") for col in cols)
        decltypes = tuple(col.get("decltype") for col in cols)

        rows = []
        for raw_row in data.get("rows") or []:
            if not isinstance(raw_row, list) or len(raw_row) != len(columns):
                raise ConnectionError(f"Malformed row from server: {raw_row!r}")
            rows.append(Row(columns, [decode_value(v) for v in raw_row]))

        last_insert_rowid = data.get("last_insert_rowid")
        try:
            return ResultSet(
                columns=columns,
                rows=tuple(rows),
                rows_affected=int(data.get("affected_row_count") or 0),
                last_insert_rowid=int(last_insert_rowid) if last_insert_rowid is not None else None,
                decltypes=decltypes,
            )
        except (TypeError, ValueError) as e:
            raise ConnectionError(f"Malformed statement result from server: {data!r}") from e

    def decode_batch(self, data: Any) -> BatchResult:
        """Decode a batch result into per-step outcomes."""
        if not isinstance(data, dict):
            raise ConnectionError(f"Malformed batch result from server: {data!r}")

        step_results = data.get("step_results") or []
        step_errors = data.get("step_errors") or []
        if len(step_errors) < len(step_results):
            step_errors = list(step_errors) + [None] * (len(step_results) - len(step_errors))
        elif len(step_results) < len(step_errors):
            step_results = list(step_results) + [None] * (len(step_errors) - len(step_results))

        outcomes = []
        for result, error in zip(step_results, step_errors):
            outcomes.append(
                StepOutcome(
                    result=self.decode(result) if result is not None else None,
                    error=decode_error(error) if error is not None else None,
                )
            )
        return BatchResult(outcomes=tuple(outcomes))


def decode_error(data: Any) -> StepError:
    """Decode a Hrana error object."""
    if isinstance(data, dict):
        code = data.get("code")
        return StepError(
            message=str(data.get("message", "Unknown error")),
            code=str(code) if code is not None else None,
        )
    return StepError(message=str(data))


# Batch step conditions


def ok_condition(step: int) -> dict[str, Any]:
    """Condition that holds when ``step`` succeeded."""
    return {"type": "ok", "step": step}


def not_condition(cond: dict[str, Any]) -> dict[str, Any]:
    """Negate a condition."""
    return {"type": "not", "cond": cond}
