# backend/tests/unit/test_vocab.py
import pytest

from flowbot.errors import ConfigurationError, HandlerError
from flowbot.workflows.engine import StateMachine
from flowbot.workflows.vocab import Vocab, VocabHandler


def arm(selector):
    def handler(machine, message, position):
        machine.set_selector(selector)
        return ""
    handler.__name__ = f"arm_{selector}"
    return handler


def reply(text):
    def handler(machine, message, position):
        return text
    handler.__name__ = f"reply_{text}"
    return handler


@pytest.mark.asyncio
async def test_first_response_wins_and_stops_dispatch(store, conversation, make_message):
    calls = []

    def later(machine, message, position):
        calls.append(position)
        machine.set_selector("stateLater")
        return ""

    vocab = Vocab(
        VocabHandler(reply("first"), "Object", {"card"}),
        VocabHandler(later, "Object", {"card"}),
    )
    machine = await StateMachine.boot(store, conversation)

    response = await vocab.handle_keywords(machine, make_message(pairs=[("card", "Object")]))

    assert response == "first"
    assert calls == []
    assert machine.selector == ""


@pytest.mark.asyncio
async def test_side_effects_accumulate_until_a_response(store, conversation, make_message):
    vocab = Vocab(
        VocabHandler(arm("stateA"), "Object", {"card"}),
        VocabHandler(reply("done"), "Command", {"add"}),
    )
    machine = await StateMachine.boot(store, conversation)

    response = await vocab.handle_keywords(machine, make_message(pairs=[("add", "Command"), ("card", "Object")]))

    assert response == "done"
    assert machine.selector == "stateA"


@pytest.mark.asyncio
async def test_registration_order_beats_token_order(store, conversation, make_message):
    vocab = Vocab(
        VocabHandler(arm("stateCard"), "Object", {"card"}),
        VocabHandler(arm("stateChange"), "Command", {"change"}),
    )
    machine = await StateMachine.boot(store, conversation)

    response = await vocab.handle_keywords(machine, make_message(pairs=[("change", "Command"), ("card", "Object")]))

    assert response == ""
    assert machine.selector == "stateChange"


@pytest.mark.asyncio
async def test_handler_runs_once_with_first_matching_position(store, conversation, make_message):
    positions = []

    def record(machine, message, position):
        positions.append(position)
        return ""

    vocab = Vocab(VocabHandler(record, "Object", {"card", "cards"}))
    machine = await StateMachine.boot(store, conversation)
    message = make_message(pairs=[("my", "None"), ("card", "Object"), ("cards", "Object")])

    await vocab.handle_keywords(machine, message)
    assert positions == [1]


@pytest.mark.asyncio
async def test_matching_ignores_case(store, conversation, make_message):
    vocab = Vocab(VocabHandler(reply("matched"), "Object", {"CARD"}))
    machine = await StateMachine.boot(store, conversation)
    assert await vocab.handle_keywords(machine, make_message(pairs=[("Card", "object")])) == "matched"


@pytest.mark.asyncio
async def test_word_type_must_match(store, conversation, make_message):
    vocab = Vocab(VocabHandler(reply("matched"), "Object", {"card"}))
    machine = await StateMachine.boot(store, conversation)
    assert await vocab.handle_keywords(machine, make_message(pairs=[("card", "Command")])) == ""
    assert await vocab.handle_keywords(machine, make_message("card")) == ""


@pytest.mark.asyncio
async def test_async_handlers_are_awaited(store, conversation, make_message):
    async def handler(machine, message, position):
        return "async"

    vocab = Vocab(VocabHandler(handler, "Object", {"card"}))
    machine = await StateMachine.boot(store, conversation)
    assert await vocab.handle_keywords(machine, make_message(pairs=[("card", "Object")])) == "async"


@pytest.mark.asyncio
async def test_handler_exception_becomes_handler_error(store, conversation, make_message):
    def broken(machine, message, position):
        raise KeyError("missing")

    vocab = Vocab(VocabHandler(broken, "Object", {"card"}))
    machine = await StateMachine.boot(store, conversation)

    with pytest.raises(HandlerError) as exc_info:
        await vocab.handle_keywords(machine, make_message(pairs=[("card", "Object")]))
    assert exc_info.value.handler == "broken"
    assert exc_info.value.word == "card"
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_handler_words_are_normalized():
    handler = VocabHandler(reply("x"), "Object", [" Card ", "ADDR"])
    assert handler.words == frozenset({"card", "addr"})


@pytest.mark.parametrize("word_type, words", [
    ("", {"card"}),
    ("Object", set()),
    ("Object", "card"),
    ("Object", {"card", ""}),
])
def test_invalid_handlers_are_rejected(word_type, words):
    with pytest.raises(ConfigurationError):
        VocabHandler(reply("x"), word_type, words)


def test_empty_vocabulary_is_rejected():
    with pytest.raises(ConfigurationError):
        Vocab()


def test_same_callable_twice_for_a_word_type_is_rejected():
    handler = arm("stateA")
    with pytest.raises(ConfigurationError):
        Vocab(VocabHandler(handler, "Object", {"card"}), VocabHandler(handler, "Object", {"address"}))
    Vocab(VocabHandler(handler, "Object", {"card"}), VocabHandler(handler, "Command", {"add"}))


def test_overlap_is_allowed_unless_disabled():
    handlers = (
        VocabHandler(arm("stateA"), "Object", {"card"}),
        VocabHandler(arm("stateB"), "Object", {"card"}),
    )
    assert len(Vocab(*handlers).handlers) == 2
    with pytest.raises(ConfigurationError):
        Vocab(*handlers, allow_overlap=False)


def test_from_table_keeps_order():
    first, second = arm("stateA"), arm("stateB")
    vocab = Vocab.from_table([(first, "Object", ["card"]), (second, "Command", ["add"])])
    assert [h.fn for h in vocab.handlers] == [first, second]
    assert isinstance(vocab.handlers, tuple)
