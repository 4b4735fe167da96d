import re

import pytest

import mockspace
from mockspace import ExpectationsNotMetError, Space, UnexpectedMessageError


class Calculator:
    def add(self, a: int, b: int) -> int:
        return a + b


def test_expectation_preferred_over_stub(space: Space) -> None:
    calc = Calculator()
    mockspace.allow_message(calc, "add").returns(0)
    mockspace.expect_message(calc, "add").returns(5)

    assert calc.add(1, 2) == 5
    # the expectation is used up, the stub answers from now on
    assert calc.add(1, 2) == 0
    assert calc.add(1, 2) == 0

    mockspace.verify()


def test_most_specific_expectation_wins(space: Space) -> None:
    calc = Calculator()
    mockspace.expect_message(calc, "add").returns("any")
    mockspace.expect_message(calc, "add").called_with(1, 2).returns("specific")

    assert calc.add(1, 2) == "specific"
    assert calc.add(3, 4) == "any"

    mockspace.verify()


def test_equally_specific_expectations_fifo(space: Space) -> None:
    calc = Calculator()
    mockspace.expect_message(calc, "add").called_with(1, 1).returns(2)
    mockspace.expect_message(calc, "add").called_with(1, 1).returns(3)

    assert calc.add(1, 1) == 2
    assert calc.add(1, 1) == 3

    mockspace.verify()


def test_tie_break_is_deterministic_across_runs() -> None:
    results = []
    for _ in range(5):
        with Space() as space:
            calc = Calculator()
            proxy = space.proxy_for(calc)
            first = proxy.add_message_expectation(None, "add")
            first.called_with(1, 2).returns("a")
            second = proxy.add_message_expectation(None, "add")
            second.called_with(a=1, b=2).returns("b")
            results.append((calc.add(1, 2), calc.add(a=1, b=2)))

    assert results == [("a", "b")] * 5


def test_positional_and_keyword_arguments_match(space: Space) -> None:
    calc = Calculator()
    mockspace.expect_message(calc, "add").called_with(a=1, b="x").returns(1)
    mockspace.expect_message(calc, "add").called_with(2, b="y").returns(2)
    mockspace.expect_message(calc, "add").called_with(3, "z").returns(3)

    assert calc.add(1, "x") == 1
    assert calc.add(2, "y") == 2
    assert calc.add(a=3, b="z") == 3

    mockspace.verify()


def test_most_recent_stub_wins(space: Space) -> None:
    calc = Calculator()
    mockspace.allow_message(calc, "add").returns("old")
    mockspace.allow_message(calc, "add").returns("new")

    assert calc.add(1, 2) == "new"


def test_most_recent_stub_wins_over_more_specific_stub(space: Space) -> None:
    calc = Calculator()
    mockspace.allow_message(calc, "add").called_with(1, 2).returns("specific")
    mockspace.allow_message(calc, "add").returns("latest")

    assert calc.add(1, 2) == "latest"


def test_specific_stub_declared_last_wins(space: Space) -> None:
    calc = Calculator()
    mockspace.allow_message(calc, "add").returns("default")
    mockspace.allow_message(calc, "add").called_with(1, 2).returns("specific")

    assert calc.add(1, 2) == "specific"
    assert calc.add(5, 5) == "default"


def test_unmatched_arguments_fall_back_to_original(space: Space) -> None:
    calc = Calculator()
    mockspace.expect_message(calc, "add").called_with(1, 2).returns(99)

    assert calc.add(3, 4) == 7
    assert calc.add(1, 2) == 99

    mockspace.verify()


def test_strict_arguments_reject_unmatched_call(space: Space) -> None:
    space.configure(strict_arguments=True)
    calc = Calculator()
    mockspace.allow_message(calc, "add").called_with(1, 2).returns(99)

    with pytest.raises(
        UnexpectedMessageError,
        match=re.escape("Arguments did not match any of: (1, 2)."),
    ):
        calc.add(3, 4)


def test_extra_call_is_counted_against_expectation(space: Space) -> None:
    calc = Calculator()
    mockspace.expect_message(calc, "add").called_with(1, 2).returns(3)

    assert calc.add(1, 2) == 3
    assert calc.add(1, 2) == 3

    with pytest.raises(ExpectationsNotMetError, match=re.escape("received 2 time(s)")):
        mockspace.verify()


def test_never_expectation_claims_call_before_stub(space: Space) -> None:
    calc = Calculator()
    mockspace.allow_message(calc, "add").returns(0)
    mockspace.expect_message(calc, "add").called_with(6, 6).never()

    assert calc.add(1, 1) == 0
    calc.add(6, 6)

    with pytest.raises(
        ExpectationsNotMetError,
        match=re.escape("'add'(6, 6) exactly 0 time(s), received 1 time(s)"),
    ):
        mockspace.verify()


def test_non_matching_arguments_have_no_side_effect(space: Space) -> None:
    calc = Calculator()
    record = mockspace.expect_message(calc, "add").called_with(1, 2)
    record.raises(RuntimeError("!!!"))

    assert calc.add(2, 2) == 4  # RuntimeError is NOT raised
    assert record.invocation_count == 0


def test_other_messages_untouched(space: Space) -> None:
    class Account:
        def __init__(self) -> None:
            self.balance = 10

        def deposit(self, amount: int) -> int:
            self.balance += amount
            return self.balance

        def withdraw(self, amount: int) -> int:
            self.balance -= amount
            return self.balance

    account = Account()
    mockspace.allow_message(account, "deposit").returns(-1)

    assert account.deposit(5) == -1
    assert account.withdraw(3) == 7
    assert account.balance == 7
