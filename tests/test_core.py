import asyncio

import pytest

from pkgsync.core import errors, shell
from pkgsync.core.channel import (
    NO,
    QUIT,
    YES,
    Channel,
    LogLine,
    NullChannel,
    PromptRequest,
    QueueChannel,
    Section,
    normalise_answer,
)
from pkgsync.core.errors import (
    CommandError,
    ConfigError,
    NoPrerequisiteError,
    StorageError,
    TransientError,
    format_error_message,
    retry_on_transient,
)
from pkgsync.core.names import DeclaredNames, dedupe, short_name


def test_short_name():
    assert short_name("oven-sh/bun/bun") == "bun"
    assert short_name("git") == "git"


def test_declared_names_match_both_ways():
    assert "oven-sh/bun/bun" in DeclaredNames(["bun"])
    assert "bun" in DeclaredNames(["oven-sh/bun/bun"])
    assert "jq" not in DeclaredNames(["git"])
    assert len(DeclaredNames(["git", "git"])) == 1


def test_dedupe_keeps_order():
    assert dedupe(["b", "a", "b", "", "c", "a"]) == ("b", "a", "c")


@pytest.mark.parametrize(
    "answer,expected",
    [("y", YES), ("YES", YES), (" n ", NO), ("q", QUIT), ("", NO), ("maybe", NO)],
)
def test_normalise_answer(answer, expected):
    assert normalise_answer(answer, (YES, NO, QUIT), NO) == expected


def test_normalise_answer_without_default_picks_last_choice():
    assert normalise_answer("?", (YES, NO)) == NO


def test_queue_channel_round_trip():
    async def scenario():
        channel = QueueChannel()
        channel.section("Sync")
        channel.emit("hello", "green")
        await channel.inbound.put("y")
        answer = await channel.ask("Continue?")
        messages = [channel.outbound.get_nowait() for _ in range(3)]
        return answer, messages

    answer, messages = asyncio.run(scenario())

    assert answer == YES
    assert messages == [
        Section("Sync"),
        LogLine("hello", "green"),
        PromptRequest("Continue?", (YES, NO), None),
    ]


def test_null_channel_answers_no():
    assert asyncio.run(NullChannel().ask("Remove?")) == NO
    assert asyncio.run(NullChannel(YES).ask("Remove?")) == YES


def test_error_context_propagation():
    error = ConfigError(error="bad").with_context(path="/tmp/pkg-config.json")

    assert error.context == {"error": "bad", "path": "/tmp/pkg-config.json"}
    assert "path=/tmp/pkg-config.json" in str(error)


def test_format_error_messages():
    config = format_error_message(ConfigError(path="/x/pkg-config.json", error="invalid JSON"))
    prereq = format_error_message(NoPrerequisiteError(required=["pacman", "apt-get", "dnf"]))
    storage = format_error_message(StorageError(path="/x/pkg-lock.json", operation="write", error="EACCES"))

    assert "/x/pkg-config.json" in config
    assert "pacman, apt-get, dnf" in prereq
    assert "write /x/pkg-lock.json" in storage


def test_format_error_message_with_missing_context():
    assert format_error_message(CommandError("boom")) == "❌ boom"


def test_retry_on_transient(monkeypatch):
    monkeypatch.setattr(errors.time, "sleep", lambda _: None)
    attempts = []

    @retry_on_transient(max_retries=3)
    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError("locked")
        return "ok"

    assert flaky() == "ok"
    assert len(attempts) == 3


def test_retry_gives_up(monkeypatch):
    async def no_sleep(_):
        return None

    monkeypatch.setattr(errors.asyncio, "sleep", no_sleep)

    @retry_on_transient(max_retries=2)
    async def always_fails():
        raise CommandError(command="brew info", returncode=1)

    with pytest.raises(CommandError):
        asyncio.run(always_fails())


def test_config_error_is_not_retried():
    calls = []

    @retry_on_transient()
    def broken():
        calls.append(1)
        raise ConfigError("bad")

    with pytest.raises(ConfigError):
        broken()
    assert calls == [1]


def test_channel_base_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Channel()


def test_run_json_waits_without_timeout(monkeypatch):
    timeouts = []

    async def capture(*cmd, timeout=None, cwd=None):
        timeouts.append(timeout)
        return '{"formulae": []}', "", 0

    monkeypatch.setattr(shell, "run_capture", capture)

    assert asyncio.run(shell.run_json("brew", "info", "--json=v2")) == {"formulae": []}
    assert timeouts == [None]
