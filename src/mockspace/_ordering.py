from __future__ import annotations

from typing import Protocol, final

from mockspace._errors import OutOfOrderError


class OrderedRecord(Protocol):
    @property
    def invocation_count(self) -> int: ...

    @property
    def minimum_met(self) -> bool: ...

    def describe(self) -> str: ...


@final
class OrderGroup:
    def __init__(self) -> None:
        self._records: list[OrderedRecord] = []

    def register(self, record: OrderedRecord) -> None:
        self._records.append(record)

    def __contains__(self, record: object) -> bool:
        return any(r is record for r in self._records)

    def handle_order_constraint(self, record: OrderedRecord) -> None:
        index = next(i for i, r in enumerate(self._records) if r is record)

        for earlier in self._records[:index]:
            if not earlier.minimum_met:
                raise OutOfOrderError(
                    f"{record.describe()} received out of order: "
                    f"{earlier.describe()} was expected first"
                )

        for later in self._records[index + 1 :]:
            if later.invocation_count:
                raise OutOfOrderError(
                    f"{record.describe()} received out of order: "
                    f"{later.describe()} was already received"
                )

    def clear(self) -> None:
        self._records.clear()
