import pytest

from mockspace import (
    Configuration,
    ExpectationsNotMetError,
    RestorationError,
    Space,
)
from mockspace import _method_double


class Printer:
    def print(self, text: str) -> str:
        return text

    async def flush(self) -> bool:
        return True


def test_context_manager_verifies_and_resets() -> None:
    printer = Printer()

    with Space() as space:
        space.proxy_for(printer).add_message_expectation(None, "print").returns("x")
        assert printer.print("hello") == "x"

    assert printer.print("hello") == "hello"
    assert "print" not in vars(printer)


def test_context_manager_reports_unmet_expectations() -> None:
    printer = Printer()

    with pytest.raises(ExpectationsNotMetError):
        with Space() as space:
            space.proxy_for(printer).add_message_expectation(None, "print")

    assert printer.print("hello") == "hello"


def test_context_manager_exception_skips_verification() -> None:
    printer = Printer()

    with pytest.raises(KeyError):
        with Space() as space:
            space.proxy_for(printer).add_message_expectation(None, "print")
            raise KeyError("boom")

    assert "print" not in vars(printer)


@pytest.mark.asyncio
async def test_async_context_manager() -> None:
    printer = Printer()

    async with Space() as space:
        space.proxy_for(printer).add_message_expectation(None, "flush").returns(
            False
        )
        assert await printer.flush() is False

    assert await printer.flush() is True


def test_configure_replaces_configuration() -> None:
    space = Space(Configuration(strict_arguments=True))

    updated = space.configure(verify_partial_doubles=True)

    assert updated is space.configuration
    assert updated == Configuration(
        verify_partial_doubles=True, strict_arguments=True
    )


def test_reset_clears_registrations() -> None:
    space = Space()
    printer = Printer()
    space.proxy_for(printer).add_stub(None, "print")
    space.any_instance_recorder_for(Printer).add_stub(None, "flush")

    space.reset_all()

    assert not space.registered(printer)
    assert list(space.proxies_of(Printer)) == []
    assert repr(space) == "<Space proxies=0 any_instance_recorders=0>"


def test_verify_includes_any_instance_templates() -> None:
    space = Space()
    space.any_instance_recorder_for(Printer).add_message_expectation(None, "print")

    try:
        failures = space.failures()
    finally:
        space.reset_all()

    assert len(failures) == 1
    assert failures[0].subject == "any instance of <class Printer>"


@pytest.fixture
def broken_restore(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_restore(obj: object, name: str, original: object) -> None:
        raise RuntimeError("cannot restore")

    monkeypatch.setattr(_method_double, "restore_attribute", failing_restore)


@pytest.mark.usefixtures("broken_restore")
def test_unmet_expectations_reported_when_restore_fails() -> None:
    printer = Printer()

    with pytest.raises(ExpectationsNotMetError) as e:
        with Space() as space:
            space.proxy_for(printer).add_message_expectation(None, "print")

    assert any("cannot restore" in note for note in e.value.__notes__)


@pytest.mark.usefixtures("broken_restore")
def test_block_exception_reported_when_restore_fails() -> None:
    printer = Printer()

    with pytest.raises(KeyError) as e:
        with Space() as space:
            space.proxy_for(printer).add_stub(None, "print")
            raise KeyError("boom")

    assert any("cannot restore" in note for note in e.value.__notes__)


@pytest.mark.usefixtures("broken_restore")
def test_restore_failure_raised_after_clean_block() -> None:
    printer = Printer()

    with pytest.raises(RestorationError, match="cannot restore"):
        with Space() as space:
            space.proxy_for(printer).add_stub(None, "print")
