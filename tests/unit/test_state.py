from __future__ import annotations

import aiohttp
import pytest

from steamchat import (
    APIError,
    Emote,
    ErrorKind,
    LeftConversation,
    PersonaState,
    RelationshipUpdate,
    SayText,
    StateUpdate,
    Summary,
    TransportError,
    Typing,
)
from steamchat._const import AUTH_USER_AGENT, CLIENT_ID, Path
from steamchat.types.id import ID64

from .mocks import Recorder, drain, make_state, until

OTHER = ID64("76561198000000001")
ANOTHER = ID64("76561198000000002")


# request building


@pytest.mark.asyncio
async def test_authenticate_builds_request() -> None:
    state, http = make_state()
    http.respond(Path.AUTH, {"access_token": "new token"})
    callback = Recorder()

    state.authenticate("user", "pass", "ABC12", callback)
    await drain(http)

    (call,) = http.calls
    assert call.method == "POST"
    assert call.params["client_id"] == CLIENT_ID
    assert call.params["grant_type"] == "password"
    assert call.params["username"] == "user"
    assert call.params["password"] == "pass"
    assert call.params["x_emailauthcode"] == "ABC12"
    assert call.params["x_webcookie"] == ""
    assert call.params["format"] == "json"
    assert call.headers["User-Agent"] == AUTH_USER_AGENT

    assert callback.calls == [(state.session, None)]
    assert state.session.token == "new token"


@pytest.mark.asyncio
async def test_authenticate_requires_guard_code() -> None:
    state, http = make_state()
    http.respond(
        Path.AUTH, {"x_errorcode": "steamguard_code_required", "error_description": "SteamGuard code required"}
    )
    callback = Recorder()

    state.authenticate("user", "pass", callback=callback)
    await drain(http)

    error = callback.error
    assert isinstance(error, APIError)
    assert error.kind is ErrorKind.AuthRequiresGuardCode
    assert str(error) == "Authentication: SteamGuard code required"
    assert http.calls[0].params["x_emailauthcode"] == ""


@pytest.mark.asyncio
async def test_authenticate_failed() -> None:
    state, http = make_state()
    http.respond(Path.AUTH, {"error": "invalid_grant", "error_description": "Incorrect login"})
    callback = Recorder()

    state.authenticate("user", "wrong", callback=callback)
    await drain(http)

    assert callback.error.kind is ErrorKind.AuthFailed  # type: ignore
    assert callback.error.message == "Authentication: Incorrect login"  # type: ignore
    assert state.session.token == "token"


@pytest.mark.asyncio
async def test_send_message_builds_request() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "OK"}, {"error": "OK"}, {"error": "OK"})

    state.send_message(SayText(OTHER, "hello"))
    state.send_message(Emote(OTHER, "waves"))
    state.send_message(Typing(OTHER))
    await drain(http)

    say, emote, typing = (call.params for call in http.calls)
    assert say == {
        "format": "json",
        "access_token": "token",
        "umqid": "1234",
        "steamid_dst": OTHER,
        "type": "saytext",
        "text": "hello",
    }
    assert emote["type"] == "emote"
    assert emote["text"] == "waves"
    assert typing["type"] == "typing"
    assert "text" not in typing


def test_send_message_rejects_other_messages() -> None:
    state, _ = make_state()
    with pytest.raises(TypeError):
        state.send_message("hello")  # type: ignore
    with pytest.raises(ValueError):
        state.send_message(LeftConversation(OTHER))


@pytest.mark.asyncio
async def test_poll_builds_request() -> None:
    state, http = make_state()
    state.session.last_message_id = 42
    http.respond(Path.POLL, {"error": "Timeout", "messagelast": 42})
    callback = Recorder()

    state.poll(callback)
    await drain(http)

    (call,) = http.calls
    assert call.params["message"] == "42"
    assert call.params["sectimeout"] == "30"
    assert call.headers["Connection"] == "Keep-Alive"
    assert callback.calls == [(state.session, [], None)]


# parsing


@pytest.mark.asyncio
async def test_logon_updates_session() -> None:
    state, http = make_state()
    state.session.steam_id = None
    http.respond(Path.LOGON, {"error": "OK", "steamid": OTHER, "umqid": "5678", "message": 17})
    callback = Recorder()

    state.logon(callback)
    await drain(http)

    assert http.calls[0].params["umqid"] == "1234"
    assert callback.calls == [(state.session, None)]
    assert state.session.steam_id == OTHER
    assert state.session.queue_id == "5678"
    assert state.session.last_message_id == 17


@pytest.mark.asyncio
async def test_logon_failed() -> None:
    state, http = make_state()
    http.respond(Path.LOGON, {"error": "Invalid access token"})
    callback = Recorder()

    state.logon(callback)
    await drain(http)

    assert callback.error.kind is ErrorKind.LogonFailed  # type: ignore
    assert str(callback.error) == "Logon: Invalid access token"


@pytest.mark.asyncio
async def test_logoff() -> None:
    state, http = make_state()
    http.respond(Path.LOGOFF, {"error": "OK"}, {"error": "Not Logged On"})
    callback = Recorder()

    state.logoff(callback)
    state.logoff(callback)
    await drain(http)

    assert callback.calls[0] == (state.session, None)
    error = callback.calls[1][1]
    assert error.kind is ErrorKind.LogoffFailed
    assert str(error) == "Logoff: Not Logged On"
    assert len(http.calls_to(Path.LOGON)) == 0


@pytest.mark.asyncio
async def test_friends_filters_relationships() -> None:
    state, http = make_state()
    http.respond(
        Path.FRIENDS,
        {
            "friends": [
                {"steamid": OTHER, "relationship": "friend", "friend_since": 0},
                {"steamid": ANOTHER, "relationship": "requestrecipient"},
                {"relationship": "friend"},
            ]
        },
    )
    callback = Recorder()

    state.fetch_friends(callback)
    await drain(http)

    (call,) = http.calls
    assert call.method == "GET"
    assert call.params["relationship"] == "friend"
    assert call.params["steamid"] == state.session.steam_id
    assert callback.results == [OTHER]
    assert callback.error is None


@pytest.mark.asyncio
async def test_friends_empty() -> None:
    state, http = make_state()
    http.respond(Path.FRIENDS, {"friends": [{"steamid": ANOTHER, "relationship": "ignored"}]}, {})
    callback = Recorder()

    state.fetch_friends(callback)
    state.fetch_friends(callback)
    await drain(http)

    for _, results, error in callback.calls:
        assert results == []
        assert error.kind is ErrorKind.FriendsEmpty
        assert str(error) == "Friends: Empty friends list"


@pytest.mark.asyncio
async def test_poll_parses_messages() -> None:
    state, http = make_state()
    own = state.session.steam_id
    http.respond(
        Path.POLL,
        {
            "error": "OK",
            "messagelast": 12,
            "messages": [
                {"type": "saytext", "steamid_from": OTHER, "text": "hi"},
                {"type": "saytext", "steamid_from": own, "text": "sent from another client"},
                {"type": "emote", "steamid_from": OTHER, "text": "waves"},
                {"type": "typing", "steamid_from": ANOTHER},
                {"type": "leftconversation", "steamid_from": ANOTHER},
                {"type": "personastate", "steamid_from": OTHER, "persona_name": "a user", "persona_state": 3},
                {"type": "personarelationship", "steamid_from": ANOTHER, "persona_state": 99},
                {"type": "personastate", "steamid_from": OTHER},
                {"type": "saytext", "steamid_from": OTHER},
                {"type": "my_new_type", "steamid_from": OTHER},
                {"type": "saytext", "text": "no author"},
            ],
        },
    )
    callback = Recorder()

    state.poll(callback)
    await drain(http)

    assert callback.error is None
    assert callback.results == [
        SayText(OTHER, "hi"),
        Emote(OTHER, "waves"),
        Typing(ANOTHER),
        LeftConversation(ANOTHER),
        StateUpdate(OTHER, PersonaState.Away, "a user"),
        RelationshipUpdate(ANOTHER, PersonaState.Offline),
    ]
    assert state.session.last_message_id == 12


@pytest.mark.asyncio
async def test_poll_timeout_is_not_an_error() -> None:
    state, http = make_state()
    state.session.last_message_id = 20
    http.respond(Path.POLL, {"error": "Timeout", "messagelast": 5}, {"sectimeout": 30})
    callback = Recorder()

    state.poll(callback)
    state.poll(callback)
    await drain(http)

    assert callback.calls == [(state.session, [], None), (state.session, [], None)]
    assert state.session.last_message_id == 20


@pytest.mark.asyncio
async def test_poll_failed() -> None:
    state, http = make_state()
    http.respond(Path.POLL, {"error": "Unknown error"})
    callback = Recorder()

    state.poll(callback)
    await drain(http)

    assert callback.results == []
    assert callback.error.kind is ErrorKind.PollFailed  # type: ignore
    assert str(callback.error) == "Polling: Unknown error"


@pytest.mark.asyncio
async def test_summaries() -> None:
    state, http = make_state()
    http.respond(
        Path.SUMMARIES,
        {
            "players": [
                {
                    "steamid": OTHER,
                    "personaname": "a user",
                    "profileurl": "https://steamcommunity.com/id/a_user/",
                    "realname": "A User",
                    "gameextrainfo": "Team Fortress 2",
                    "gameserverip": "127.0.0.1:27015",
                    "personastate": 1,
                },
                {"steamid": ANOTHER, "personastate": 42},
                {"personaname": "no id"},
            ]
        },
    )
    callback = Recorder()

    state.fetch_summaries([OTHER, ANOTHER], callback)
    await drain(http)

    (call,) = http.calls
    assert call.method == "GET"
    assert call.params["steamids"] == f"{OTHER},{ANOTHER}"
    assert callback.error is None
    assert callback.results == [
        Summary(
            steam_id=OTHER,
            name="a user",
            profile_url="https://steamcommunity.com/id/a_user/",
            real_name="A User",
            game="Team Fortress 2",
            game_server="127.0.0.1:27015",
            state=PersonaState.Online,
        ),
        Summary(steam_id=ANOTHER),
    ]


@pytest.mark.asyncio
async def test_summaries_empty() -> None:
    state, http = make_state()
    http.respond(Path.SUMMARIES, {"players": []})
    callback = Recorder()

    state.fetch_summary(OTHER, callback)
    await drain(http)

    assert callback.results == []
    assert callback.error.kind is ErrorKind.SummariesEmpty  # type: ignore
    assert str(callback.error) == "Summaries: No friends returned"


def test_summaries_no_ids() -> None:
    state, http = make_state()
    callback = Recorder()

    state.fetch_summaries([], callback)

    assert callback.calls == [(state.session, [], None)]
    assert not http.calls
    with pytest.raises(ValueError):
        state.fetch_summary(ID64(""), callback)


@pytest.mark.asyncio
@pytest.mark.parametrize("count, sizes", [(100, [100]), (101, [100, 1]), (250, [100, 100, 50])])
async def test_summaries_are_chunked(count: int, sizes: list[int]) -> None:
    state, http = make_state()
    ids = [ID64(str(76561198000000000 + i)) for i in range(count)]
    http.respond(Path.SUMMARIES, *({"players": [{"steamid": ids[0]}]} for _ in sizes))
    callback = Recorder()

    state.fetch_summaries(ids, callback)
    await drain(http)

    batches = [call.params["steamids"].split(",") for call in http.calls]
    assert [len(batch) for batch in batches] == sizes
    assert [id for batch in batches for id in batch] == ids
    assert len(callback.calls) == len(sizes)


# error handling


@pytest.mark.asyncio
async def test_parser_error() -> None:
    state, http = make_state()
    http.respond(Path.LOGON, "<html>Service Unavailable</html>", "[]")
    callback = Recorder()

    state.logon(callback)
    state.logon(callback)
    await drain(http)

    for _, error in callback.calls:
        assert isinstance(error, APIError)
        assert error.kind is ErrorKind.Parser
        assert str(error).startswith("Logon: Parser: ")


@pytest.mark.asyncio
async def test_transport_error() -> None:
    state, http = make_state()
    http.respond(Path.FRIENDS, aiohttp.ClientConnectionError("Connection reset"))
    http.respond(Path.MESSAGE, TransportError("503 Service Unavailable"))
    friends = Recorder()
    message = Recorder()

    state.fetch_friends(friends)
    state.send_message(SayText(OTHER, "hi"), message)
    await drain(http)

    assert isinstance(friends.error, TransportError)
    assert isinstance(friends.error.__cause__, aiohttp.ClientConnectionError)
    assert str(friends.error) == "Friends: Connection reset"
    assert friends.results == []
    assert str(message.error) == "Message: 503 Service Unavailable"


@pytest.mark.asyncio
async def test_callback_errors_are_contained() -> None:
    state, http = make_state()
    http.respond(Path.LOGON, {"error": "OK"}, {"error": "OK"})
    callback = Recorder()

    def broken(*args: object) -> None:
        raise RuntimeError("oops")

    state.logon(broken)
    state.logon(callback)
    await drain(http)

    assert callback.calls == [(state.session, None)]


@pytest.mark.asyncio
async def test_async_callbacks() -> None:
    state, http = make_state()
    http.respond(Path.LOGON, {"error": "OK"})
    called = []

    async def callback(session: object, error: object) -> None:
        called.append(error)

    state.logon(callback)
    await drain(http)

    assert called == [None]


# session recovery


@pytest.mark.asyncio
async def test_message_relogon_and_resubmit() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "OK"}, {"error": "OK"})
    http.respond(Path.LOGON, {"error": "OK"})
    first = Recorder()
    second = Recorder()

    state.send_message(SayText(OTHER, "first"), first)
    state.send_message(SayText(ANOTHER, "second"), second)
    await drain(http)

    assert [(call.path, call.params.get("text")) for call in http.calls] == [
        (Path.MESSAGE, "first"),
        (Path.LOGON, None),
        (Path.MESSAGE, "first"),
        (Path.MESSAGE, "second"),
    ]
    assert first.calls == [(state.session, None)]
    assert second.calls == [(state.session, None)]
    assert not http.queue_paused
    assert not state.relogging


@pytest.mark.asyncio
async def test_queue_is_paused_during_relogon() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "not logged on"}, {"error": "OK"}, {"error": "OK"})
    http.respond(Path.LOGON, {"error": "OK"})
    gate = http.gate(Path.LOGON)
    callback = Recorder()

    state.send_message(SayText(OTHER, "first"), callback)
    state.send_message(SayText(OTHER, "second"), callback)
    await until(lambda: len(http.calls_to(Path.LOGON)) == 1)

    assert http.queue_paused
    assert state.relogging
    assert http.queued == 2
    assert len(http.calls_to(Path.MESSAGE)) == 1
    assert not callback.calls

    gate.set()
    await drain(http)

    assert not http.queue_paused
    assert len(http.calls_to(Path.MESSAGE)) == 3
    assert callback.calls == [(state.session, None), (state.session, None)]


@pytest.mark.asyncio
async def test_poll_relogon_rebuilds_request() -> None:
    state, http = make_state()
    http.respond(Path.POLL, {"error": "Not Logged On", "messagelast": 7}, {"error": "Timeout"})
    http.respond(Path.LOGON, {"error": "OK"})
    gate = http.gate(Path.LOGON)
    callback = Recorder()

    state.poll(callback)
    state.session.token = "stale"
    await until(lambda: len(http.calls_to(Path.LOGON)) == 1)
    state.session.token = "refreshed"
    gate.set()
    await drain(http)

    first, relogon, second = http.calls
    assert first.path == second.path == Path.POLL
    assert relogon.path == Path.LOGON
    assert first.params["access_token"] == "stale"
    assert second.params["access_token"] == "refreshed"
    assert first.params["message"] == "0"
    assert second.params["message"] == "7"
    assert callback.calls == [(state.session, [], None)]


@pytest.mark.asyncio
async def test_relogon_only_sent_once() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "OK"})
    http.respond(Path.POLL, {"error": "Not Logged On"}, {"error": "Timeout"})
    http.respond(Path.LOGON, {"error": "OK"})
    gate = http.gate(Path.LOGON)
    parsed = []
    parse = state.parse

    def recording_parse(context, data):  # type: ignore
        parsed.append(context.kind)
        return parse(context, data)

    state.parse = recording_parse  # type: ignore
    message = Recorder()
    poll = Recorder()

    state.send_message(SayText(OTHER, "hi"), message)
    state.poll(poll)
    await until(lambda: len(parsed) == 2 and len(http.calls_to(Path.LOGON)) == 1)

    assert state.relogging
    assert http.queue_paused
    gate.set()
    await drain(http)

    assert len(http.calls_to(Path.LOGON)) == 1
    assert len(http.calls_to(Path.MESSAGE)) == 2
    assert len(http.calls_to(Path.POLL)) == 2
    assert message.calls == [(state.session, None)]
    assert poll.calls == [(state.session, [], None)]


@pytest.mark.asyncio
async def test_relogon_is_bounded() -> None:
    state, http = make_state(max_relogon_attempts=3)
    http.respond(Path.MESSAGE, *({"error": "Not Logged On"} for _ in range(4)))
    http.respond(Path.LOGON, *({"error": "OK"} for _ in range(3)))
    callback = Recorder()

    state.send_message(SayText(OTHER, "hi"), callback)
    await drain(http)

    assert len(http.calls_to(Path.MESSAGE)) == 4
    assert len(http.calls_to(Path.LOGON)) == 3
    (_, error) = callback.calls[0]
    assert len(callback.calls) == 1
    assert error.kind is ErrorKind.MessageFailed
    assert str(error) == "Message: Not Logged On"
    assert not http.queue_paused


@pytest.mark.asyncio
async def test_relogon_failure_still_unpauses() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "Rate limited"})
    http.respond(Path.LOGON, {"error": "Invalid access token"})
    callback = Recorder()

    state.send_message(SayText(OTHER, "hi"), callback)
    await drain(http)

    assert not http.queue_paused
    assert not state.relogging
    assert len(callback.calls) == 1
    assert str(callback.error) == "Message: Rate limited"


@pytest.mark.asyncio
async def test_relogon_transport_failure_still_unpauses() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "OK"})
    http.respond(Path.LOGON, aiohttp.ServerDisconnectedError())
    callback = Recorder()

    state.send_message(SayText(OTHER, "hi"), callback)
    await drain(http)

    assert not http.queue_paused
    assert callback.calls == [(state.session, None)]


# cancellation


@pytest.mark.asyncio
async def test_close_releases_without_callbacks() -> None:
    state, http = make_state()
    http.gate(Path.POLL)
    http.gate(Path.MESSAGE)
    poll = Recorder()
    message = Recorder()

    state.poll(poll)
    state.send_message(SayText(OTHER, "first"), message)
    state.send_message(SayText(OTHER, "second"), message)
    await until(lambda: len(http.calls) == 2)
    contexts = [request.context for request in http._pending]

    await http.close()

    assert len(contexts) == 3
    assert all(context.released for context in contexts)  # type: ignore
    assert not poll.calls
    assert not message.calls
    assert not http._pending
    assert http.queued == 0
    with pytest.raises(RuntimeError):
        state.poll(poll)


# undecodable and unexpected responses


@pytest.mark.asyncio
async def test_poll_undecodable_body() -> None:
    state, http = make_state()
    http.respond(Path.POLL, b'{"error": "OK", "text": "\xff\xfe"}')
    callback = Recorder()

    state.poll(callback)
    await drain(http)

    assert len(callback.calls) == 1
    assert callback.results == []
    assert isinstance(callback.error, APIError)
    assert callback.error.kind is ErrorKind.Parser
    assert str(callback.error).startswith("Polling: Parser: ")
    assert not http._pending


@pytest.mark.asyncio
async def test_relogon_undecodable_body_still_unpauses() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "OK"})
    http.respond(Path.LOGON, b"\x80\x81\x82")
    callback = Recorder()

    state.send_message(SayText(OTHER, "hi"), callback)
    await drain(http)

    assert not http.queue_paused
    assert not state.relogging
    assert http.queued == 0
    assert callback.calls == [(state.session, None)]


@pytest.mark.asyncio
async def test_relogon_unexpected_error_still_unpauses() -> None:
    state, http = make_state()
    http.respond(Path.MESSAGE, {"error": "Not Logged On"}, {"error": "OK"}, {"error": "OK"})
    http.respond(Path.LOGON, UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
    callback = Recorder()

    state.send_message(SayText(OTHER, "first"), callback)
    state.send_message(SayText(OTHER, "second"), callback)
    await drain(http)

    assert not http.queue_paused
    assert not state.relogging
    assert callback.calls == [(state.session, None), (state.session, None)]
    assert not http._pending


@pytest.mark.asyncio
async def test_unexpected_error_is_delivered_as_transport_error() -> None:
    state, http = make_state()
    http.respond(Path.POLL, RuntimeError("boom"))
    callback = Recorder()

    state.poll(callback)
    await drain(http)

    assert len(callback.calls) == 1
    assert isinstance(callback.error, TransportError)
    assert isinstance(callback.error.__cause__, RuntimeError)
    assert str(callback.error) == "Polling: RuntimeError: boom"


def test_summaries_no_ids_callback_errors_are_contained() -> None:
    state, http = make_state()

    def broken(*args: object) -> None:
        raise RuntimeError("oops")

    state.fetch_summaries([], broken)

    assert not http.calls
