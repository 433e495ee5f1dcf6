"""Exact decimal amounts and the SQL arithmetic the ledger runs on them.

PostgreSQL NUMERIC is exact. SQLite has no decimal type and turns NUMERIC into
REAL, so there amounts are stored as text and negation, multiplication and
summing go through Python functions registered on every connection.
"""

from decimal import Context, Decimal
from typing import Any

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import TypeDecorator

AMOUNT_DIGITS = 38
AMOUNT_PLACES = 18

# Wide enough that no product of two stored amounts is rounded before quantizing.
_CONTEXT = Context(prec=2 * AMOUNT_DIGITS + 2)
_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)


def to_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_amount_text(value: Decimal) -> str:
    """Fixed-point text of an amount at storage scale."""
    return format(value.quantize(_QUANTUM, context=_CONTEXT), "f")


class ExactDecimal(TypeDecorator):
    """NUMERIC(38, 18) on PostgreSQL, fixed-point text on SQLite."""

    impl = Numeric
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(AMOUNT_DIGITS, AMOUNT_PLACES)

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(AMOUNT_DIGITS + 8))
        return super().load_dialect_impl(dialect)

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None or dialect.name != "sqlite":
            return value
        return to_amount_text(to_decimal(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return to_decimal(value)


class decimal_neg(FunctionElement):
    """Negated amount."""

    type = ExactDecimal()
    inherit_cache = True


class decimal_product(FunctionElement):
    """Product of two amounts."""

    type = ExactDecimal()
    inherit_cache = True


class decimal_sum(FunctionElement):
    """Aggregate sum of amounts."""

    type = ExactDecimal()
    inherit_cache = True


class decimal_sign(FunctionElement):
    """-1, 0 or 1."""

    type = Integer()
    inherit_cache = True


@compiles(decimal_neg)
def _compile_neg(element: decimal_neg, compiler: Any, **kw: Any) -> str:
    return f"-({compiler.process(element.clauses, **kw)})"


@compiles(decimal_product)
def _compile_product(element: decimal_product, compiler: Any, **kw: Any) -> str:
    left, right = element.clauses
    return f"({compiler.process(left, **kw)} * {compiler.process(right, **kw)})"


@compiles(decimal_sum)
def _compile_sum(element: decimal_sum, compiler: Any, **kw: Any) -> str:
    return f"sum({compiler.process(element.clauses, **kw)})"


@compiles(decimal_sign)
def _compile_sign(element: decimal_sign, compiler: Any, **kw: Any) -> str:
    return f"sign({compiler.process(element.clauses, **kw)})"


@compiles(decimal_neg, "sqlite")
@compiles(decimal_product, "sqlite")
@compiles(decimal_sum, "sqlite")
@compiles(decimal_sign, "sqlite")
def _compile_sqlite(element: FunctionElement, compiler: Any, **kw: Any) -> str:
    return f"{type(element).__name__}({compiler.process(element.clauses, **kw)})"


def _sqlite_neg(value: Any) -> str | None:
    if value is None:
        return None
    return to_amount_text(_CONTEXT.minus(to_decimal(value)))


def _sqlite_product(left: Any, right: Any) -> str | None:
    if left is None or right is None:
        return None
    return to_amount_text(_CONTEXT.multiply(to_decimal(left), to_decimal(right)))


def _sqlite_sign(value: Any) -> int | None:
    if value is None:
        return None
    amount = to_decimal(value)
    return (amount > 0) - (amount < 0)


class _SqliteSum:
    def __init__(self) -> None:
        self.total: Decimal | None = None

    def step(self, value: Any) -> None:
        if value is None:
            return
        amount = to_decimal(value)
        self.total = amount if self.total is None else _CONTEXT.add(self.total, amount)

    def finalize(self) -> str | None:
        return None if self.total is None else to_amount_text(self.total)


def register_sqlite_functions(dbapi_connection: Any) -> None:
    """Register the decimal functions on a raw sqlite3 connection."""
    dbapi_connection.create_function("decimal_neg", 1, _sqlite_neg, deterministic=True)
    dbapi_connection.create_function("decimal_product", 2, _sqlite_product, deterministic=True)
    dbapi_connection.create_function("decimal_sign", 1, _sqlite_sign, deterministic=True)
    dbapi_connection.create_aggregate("decimal_sum", 1, _SqliteSum)
