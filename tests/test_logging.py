import json
import logging

from relaybot.utils.logging import JsonlFormatter, SensitiveDataFilter, message_context


def make_record(msg="hello", **extra):
    record = logging.LogRecord("relaybot.queue", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_jsonl_keeps_key_order_and_drops_empty():
    line = JsonlFormatter().format(make_record(subsys="queue", event="message.enqueued", user_id="7"))
    entry = json.loads(line)
    assert list(entry) == ["ts", "level", "name", "subsys", "user_id", "event", "detail"]
    assert entry["detail"] == "hello"


def test_secrets_in_extras_are_redacted():
    record = make_record(payload={"Authorization": "Api-Key abc", "nested": {"token": "t"}, "url": "https://x"})
    assert SensitiveDataFilter().filter(record) is True
    assert record.payload == {"Authorization": "[REDACTED]", "nested": {"token": "[REDACTED]"}, "url": "https://x"}


def test_message_context(make_message, chat):
    message = make_message("hi", author_id="7")
    assert message_context(message, chat) == {"chat_id": "chat-1", "user_id": "7", "msg_id": None}
    assert message_context(message)["chat_id"] is None
