"""Result shapes and row delivery."""

import enum
import inspect
from typing import Any, Callable, List, Optional, Sequence

from litequery.codec import decode_row

RowConsumer = Callable[[Any], Any]


class Shape(enum.Enum):
    """How each row of a query is converted before delivery."""

    MAPPING = "mapping"
    SEQUENCE = "sequence"
    COLUMN = "column"
    SINGLE_ROW = "single_row"
    SINGLE_VALUE = "single_value"

    @property
    def single(self) -> bool:
        return self in (Shape.SINGLE_ROW, Shape.SINGLE_VALUE)

    def convert(self, names: Sequence[str], row: Sequence[Any]) -> Any:
        values = decode_row(row)
        if self is Shape.MAPPING or self is Shape.SINGLE_ROW:
            return dict(zip(names, values))
        if self is Shape.SEQUENCE:
            return list(values)
        return values[0]


class Sink:
    """Destination for converted rows."""

    async def push(self, row: Any) -> None:
        raise NotImplementedError

    def result(self) -> Any:
        raise NotImplementedError


class AccumulatingSink(Sink):
    """Collects every row and returns them as a list."""

    def __init__(self) -> None:
        self.rows: List[Any] = []

    async def push(self, row: Any) -> None:
        self.rows.append(row)

    def result(self) -> List[Any]:
        return self.rows


class PushSink(Sink):
    """Hands each row to a consumer as soon as it is converted.

    The consumer may be a plain callable or a coroutine function.  Nothing
    is retained; the result is the number of rows delivered.
    """

    def __init__(self, consumer: RowConsumer) -> None:
        self.consumer = consumer
        self.count = 0

    async def push(self, row: Any) -> None:
        outcome = self.consumer(row)
        if inspect.isawaitable(outcome):
            await outcome
        self.count += 1

    def result(self) -> int:
        return self.count


def make_sink(consumer: Optional[RowConsumer]) -> Sink:
    if consumer is None:
        return AccumulatingSink()
    return PushSink(consumer)


def column_names(description: Sequence[Sequence[Any]]) -> List[str]:
    return [column[0] for column in description]
