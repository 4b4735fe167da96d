import re

import pytest

import mockspace
from mockspace import AnyInstanceRecorder, ExpectationsNotMetError, Space


def _send(self: "Mailer", to: str) -> str:
    return f"sent to {to}"


class Mailer:
    send = _send


@pytest.fixture
def recorder(space: Space) -> AnyInstanceRecorder:
    return mockspace.any_instance_recorder_for(Mailer)


def test_expectation_satisfied_by_one_of_many_instances(
    recorder: AnyInstanceRecorder,
) -> None:
    recorder.add_message_expectation(None, "send").returns("fake")
    first, second = Mailer(), Mailer()

    assert first.send("a@example.com") == "fake"
    _ = second

    mockspace.verify()


def test_expectation_received_by_no_instance_fails(
    recorder: AnyInstanceRecorder,
) -> None:
    recorder.add_message_expectation(None, "send")
    Mailer()

    with pytest.raises(ExpectationsNotMetError) as e:
        mockspace.verify()

    assert len(e.value.failures) == 1
    assert "any instance of <class Mailer>" in str(e.value)


def test_instance_exceeding_count_fails(recorder: AnyInstanceRecorder) -> None:
    recorder.add_message_expectation(None, "send")
    mailer = Mailer()

    mailer.send("a")
    mailer.send("b")

    with pytest.raises(
        ExpectationsNotMetError,
        match=re.escape("exactly 1 time(s), received 2 time(s)"),
    ) as e:
        mockspace.verify()

    assert "<Mailer object at" in str(e.value)


def test_each_instance_counted_separately(recorder: AnyInstanceRecorder) -> None:
    recorder.add_message_expectation(None, "send").returns("fake")
    first, second = Mailer(), Mailer()

    first.send("a")
    second.send("b")

    mockspace.verify()


def test_template_declared_after_promotion_applies(
    recorder: AnyInstanceRecorder,
) -> None:
    recorder.add_stub(None, "send").returns("default")
    mailer = Mailer()
    assert mailer.send("a") == "default"

    recorder.add_message_expectation(None, "send").called_with("vip").returns("fast")

    assert mailer.send("vip") == "fast"
    assert mailer.send("other") == "default"
    mockspace.verify()


def test_unmatched_arguments_call_original(recorder: AnyInstanceRecorder) -> None:
    recorder.add_stub(None, "send").called_with("a").returns("fake")

    assert Mailer().send("b") == "sent to b"


def test_instances_without_namespace_are_routed(space: Space) -> None:
    class Compact:
        __slots__ = ()

        def size(self) -> int:
            return 1

    mockspace.any_instance_recorder_for(Compact).add_stub(None, "size").returns(9)

    assert Compact().size() == 9
    mockspace.teardown()
    assert Compact().size() == 1


def test_subclass_instances_are_routed(recorder: AnyInstanceRecorder) -> None:
    class PriorityMailer(Mailer):
        pass

    recorder.add_message_expectation(None, "send").returns("fake")

    assert PriorityMailer().send("a") == "fake"
    mockspace.verify()


def test_explicit_promote(recorder: AnyInstanceRecorder) -> None:
    recorder.add_stub(None, "send").returns("fake")
    mailer = Mailer()

    proxy = recorder.promote(mailer)

    assert proxy is mockspace.proxy_for(mailer)
    assert [p.subject for p in mockspace.proxies_of(Mailer)] == [mailer]
    assert recorder.promoted_proxies == (proxy,)

    with pytest.raises(TypeError, match="is not any instance of"):
        recorder.promote(object())


def test_class_access_returns_original(recorder: AnyInstanceRecorder) -> None:
    recorder.add_stub(None, "send").returns("fake")

    assert Mailer.send is _send


def test_teardown_restores_class(recorder: AnyInstanceRecorder) -> None:
    recorder.add_stub(None, "send").returns("fake")
    mailer = Mailer()
    mailer.send("a")

    mockspace.teardown()

    assert vars(Mailer)["send"] is _send
    assert mailer.send("a") == "sent to a"
    assert "send" not in vars(mailer)


def test_class_proxy_and_recorder_unwind_in_reverse(space: Space) -> None:
    mockspace.allow_message(Mailer, "send").returns("class stub")
    recorder = mockspace.any_instance_recorder_for(Mailer)
    recorder.add_stub(None, "send").called_with("x").returns("instance stub")

    mailer = Mailer()
    assert mailer.send("x") == "instance stub"
    assert mailer.send("y") == "sent to y"
    assert Mailer.send("y") == "class stub"

    mockspace.teardown()
    assert vars(Mailer)["send"] is _send


def test_ordered_template_rejected(recorder: AnyInstanceRecorder) -> None:
    template = recorder.add_message_expectation(None, "send")

    with pytest.raises(TypeError):
        template.ordered()


def test_subclass_override_is_the_original(space: Space) -> None:
    class Base:
        def fetch(self, key: int) -> str:
            return "base"

    class Child(Base):
        def fetch(self, key: int) -> str:
            return "child"

    mockspace.any_instance_recorder_for(Base).add_stub(None, "fetch").returns("stub")
    child = Child()
    mockspace.allow_message(child, "fetch").called_with(99).returns("ninety-nine")

    assert child.fetch(99) == "ninety-nine"
    assert child.fetch(2) == "child"
    assert Base().fetch(2) == "stub"
