"""
Unit tests for the IndexerClient, with the HTTP layer replaced by httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from memorabilia.exceptions import IndexerUnreachable
from memorabilia.indexer_client import IndexerClient

LEADERBOARD_NODE = {
    "rank": 1,
    "player": "alice",
    "telegram_id": "1001",
    "score": 14800,
    "difficulty": 1,
    "moves": 4,
    "time": 10,
    "game_id": 42,
    "achieved_at": 1714564800,
}

ACCOUNT_NODE = {
    "telegram_id": "1001",
    "owner_public_key": "0x1",
    "session_public_key": "0x2",
    "account_address": "0xabc",
    "created_at": 1714000000,
    "last_active": 1714564800,
    "nonce": 3,
    "total_games": 5,
    "is_active": True,
}


def edges(*nodes):
    return {"edges": [{"node": node} for node in nodes]}


class RecordingTransport:
    """Answers every request with the scripted response and remembers the GraphQL bodies."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        assert request.url.path == "/graphql"
        return self.response


def make_client(response: httpx.Response):
    recorder = RecordingTransport(response)
    client = IndexerClient("http://torii.test/", transport=httpx.MockTransport(recorder))
    return client, recorder


def run_with(client: IndexerClient, coro_factory):
    async def run():
        async with client:
            return await coro_factory()

    return asyncio.run(run())


class TestIndexerClient:
    def test_leaderboard_query(self):
        client, recorder = make_client(
            httpx.Response(200, json={"data": {"leaderboardEntryConnection": edges(LEADERBOARD_NODE)}})
        )

        nodes = run_with(client, lambda: client.query_leaderboard(limit=10, offset=20))

        assert nodes[0].telegram_id == "1001"
        assert nodes[0].game_id == 42
        assert recorder.requests[0]["variables"] == {"first": 10, "skip": 20}
        assert "rank_ASC" in recorder.requests[0]["query"]

    def test_user_accounts_ordering(self):
        client, recorder = make_client(
            httpx.Response(200, json={"data": {"userAccountConnection": edges(ACCOUNT_NODE)}})
        )

        accounts = run_with(client, lambda: client.query_user_accounts(order_by="last_active", order="asc"))

        assert accounts[0].total_games == 5
        assert "last_active_ASC" in recorder.requests[0]["query"]

    def test_user_accounts_rejects_unknown_ordering(self):
        client, _ = make_client(httpx.Response(200, json={"data": {}}))
        with pytest.raises(ValueError):
            run_with(client, lambda: client.query_user_accounts(order_by="nonce"))

    def test_malformed_leaderboard_nodes_are_skipped(self):
        broken = {key: value for key, value in LEADERBOARD_NODE.items() if key != "score"}
        client, _ = make_client(
            httpx.Response(200, json={"data": {"leaderboardEntryConnection": edges(broken, LEADERBOARD_NODE)}})
        )

        nodes = run_with(client, lambda: client.query_leaderboard())

        assert [node.telegram_id for node in nodes] == ["1001"]
        assert nodes[0].score == 14800

    def test_malformed_user_lookup_is_unreachable(self):
        account = {"telegram_id": "1001", "total_games": "many"}
        client, _ = make_client(httpx.Response(200, json={"data": {"userAccount": account}}))
        with pytest.raises(IndexerUnreachable):
            run_with(client, lambda: client.query_user_by_telegram_id("1001"))

    def test_user_lookup(self):
        client, recorder = make_client(httpx.Response(200, json={"data": {"userAccount": ACCOUNT_NODE}}))

        account = run_with(client, lambda: client.query_user_by_telegram_id("1001"))

        assert account.account_address == "0xabc"
        assert recorder.requests[0]["variables"] == {"telegramId": "1001"}

    def test_user_lookup_missing(self):
        client, _ = make_client(httpx.Response(200, json={"data": {"userAccount": None}}))
        assert run_with(client, lambda: client.query_user_by_telegram_id("404")) is None

    def test_active_users_window(self):
        client, recorder = make_client(
            httpx.Response(200, json={"data": {"userAccountConnection": edges(ACCOUNT_NODE)}})
        )

        run_with(client, lambda: client.query_active_users(since=1714000000))

        assert recorder.requests[0]["variables"] == {"since": 1714000000}
        assert "last_active_gt" in recorder.requests[0]["query"]

    def test_player_games(self):
        game = {"game_id": 42, "player": "0xabc", "score": 100}
        client, _ = make_client(httpx.Response(200, json={"data": {"gameStateConnection": edges(game)}}))
        assert run_with(client, lambda: client.query_player_games("0xabc")) == [game]

    def test_graphql_errors_are_unreachable(self):
        client, _ = make_client(httpx.Response(200, json={"errors": [{"message": "bad field"}]}))
        with pytest.raises(IndexerUnreachable):
            run_with(client, lambda: client.query_leaderboard())

    def test_http_errors_are_unreachable(self):
        client, _ = make_client(httpx.Response(503, text="down"))
        with pytest.raises(IndexerUnreachable):
            run_with(client, lambda: client.query_leaderboard())

    def test_invalid_json_is_unreachable(self):
        client, _ = make_client(httpx.Response(200, text="<html>"))
        with pytest.raises(IndexerUnreachable):
            run_with(client, lambda: client.query_leaderboard())

    def test_network_errors_are_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = IndexerClient("http://torii.test", transport=httpx.MockTransport(refuse))
        with pytest.raises(IndexerUnreachable):
            run_with(client, lambda: client.query_leaderboard())
