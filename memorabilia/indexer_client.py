"""GraphQL client for the indexing service (accounts, leaderboard, games)."""

import logging
import time
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from memorabilia.exceptions import IndexerUnreachable
from memorabilia.models.dc_models import UserAccount
from memorabilia.models.schema_models import IndexerLeaderboardNode

USER_ACCOUNT_FIELDS = """
    telegram_id
    owner_public_key
    session_public_key
    account_address
    created_at
    last_active
    nonce
    total_games
    is_active
"""

USER_ORDER_FIELDS = ("created_at", "last_active", "total_games")
ACTIVE_WINDOW_SECONDS = 86400


class IndexerClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL document against the indexer

        Args:
            query (str): GraphQL document
            variables (Dict[str, Any], optional): Values for the document variables

        Raises:
            IndexerUnreachable: Transport failure, HTTP error status or GraphQL errors

        Returns:
            Dict[str, Any]: The "data" member of the response
        """
        try:
            response = await self.client.post("/graphql", json={"query": query, "variables": variables or {}})
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logging.error(f"Indexer returned HTTP {e.response.status_code}: {e.response.text[:500]}")
            raise IndexerUnreachable(f"Indexer HTTP error {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logging.error(f"Indexer network error: {e}")
            raise IndexerUnreachable(f"Indexer network error: {e}") from e
        except ValueError as e:
            logging.error(f"Indexer response was not valid JSON: {e}")
            raise IndexerUnreachable("Indexer response was not valid JSON") from e

        if body.get("errors"):
            logging.error(f"GraphQL error: {body['errors']}")
            raise IndexerUnreachable(f"GraphQL error: {body['errors']}")
        return body.get("data") or {}

    @staticmethod
    def _nodes(data: Dict[str, Any], connection: str) -> List[Dict[str, Any]]:
        edges = (data.get(connection) or {}).get("edges") or []
        return [edge["node"] for edge in edges]

    def _validate_nodes(self, model: Type[BaseModel], data: Dict[str, Any], connection: str) -> List[Any]:
        """Validate every node of a connection, skipping the ones that do not fit the model"""
        valid = []
        for node in self._nodes(data, connection):
            try:
                valid.append(model.model_validate(node))
            except ValidationError as e:
                logging.warning(f"Skipping malformed {connection} node: {e.error_count()} errors")
        return valid

    async def query_user_accounts(
        self, limit: int = 100, offset: int = 0, order_by: str = "created_at", order: str = "desc"
    ) -> List[UserAccount]:
        """Paginated listing of registered accounts

        Args:
            limit (int): Page size
            offset (int): Entries to skip
            order_by (str): created_at, last_active or total_games
            order (str): asc or desc
        """
        if order_by not in USER_ORDER_FIELDS or order.lower() not in ("asc", "desc"):
            raise ValueError(f"Unsupported ordering {order_by} {order}")
        query = f"""
            query Users($first: Int, $skip: Int) {{
              userAccountConnection(first: $first, skip: $skip, orderBy: {order_by}_{order.upper()}) {{
                edges {{ node {{ {USER_ACCOUNT_FIELDS} }} }}
              }}
            }}
        """
        data = await self.query(query, {"first": limit, "skip": offset})
        return self._validate_nodes(UserAccount, data, "userAccountConnection")

    async def query_leaderboard(self, limit: int = 100, offset: int = 0) -> List[IndexerLeaderboardNode]:
        """Leaderboard entries ordered by rank ascending"""
        query = """
            query Leaderboard($first: Int, $skip: Int) {
              leaderboardEntryConnection(first: $first, skip: $skip, orderBy: rank_ASC) {
                edges {
                  node { rank player telegram_id score difficulty moves time game_id achieved_at }
                }
              }
            }
        """
        data = await self.query(query, {"first": limit, "skip": offset})
        return self._validate_nodes(IndexerLeaderboardNode, data, "leaderboardEntryConnection")

    async def query_user_by_telegram_id(self, telegram_id: str) -> Optional[UserAccount]:
        """Single account lookup"""
        query = f"""
            query User($telegramId: String!) {{
              userAccount(telegram_id: $telegramId) {{ {USER_ACCOUNT_FIELDS} }}
            }}
        """
        data = await self.query(query, {"telegramId": str(telegram_id)})
        node = data.get("userAccount")
        if not node:
            return None
        try:
            return UserAccount.model_validate(node)
        except ValidationError as e:
            raise IndexerUnreachable(f"Malformed account for {telegram_id}: {e.error_count()} errors") from e

    async def query_active_users(self, since: Optional[int] = None) -> List[UserAccount]:
        """Accounts active after `since` (epoch seconds), last 24 hours by default"""
        if since is None:
            since = int(time.time()) - ACTIVE_WINDOW_SECONDS
        query = f"""
            query ActiveUsers($since: Int!) {{
              userAccountConnection(where: {{ last_active_gt: $since, is_active: true }}, orderBy: last_active_DESC) {{
                edges {{ node {{ {USER_ACCOUNT_FIELDS} }} }}
              }}
            }}
        """
        data = await self.query(query, {"since": since})
        return self._validate_nodes(UserAccount, data, "userAccountConnection")

    async def query_player_games(self, player_address: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent games of a player, newest first"""
        query = """
            query PlayerGames($player: String!, $first: Int) {
              gameStateConnection(where: { player: $player }, first: $first, orderBy: started_at_DESC) {
                edges {
                  node {
                    game_id player difficulty matched_count total_pairs moves score
                    started_at completed_at status elapsed_time
                  }
                }
              }
            }
        """
        data = await self.query(query, {"player": player_address, "first": limit})
        return self._nodes(data, "gameStateConnection")
