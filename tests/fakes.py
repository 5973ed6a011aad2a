import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from memorabilia.models.operation_models import ContractCall

START_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when the test says so."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_receipt(transaction_hash: str, events: List[dict], execution_status: str = "SUCCEEDED") -> dict:
    return {
        "transaction_hash": transaction_hash,
        "finality_status": "ACCEPTED_ON_L2",
        "execution_status": execution_status,
        "events": events,
    }


def event(name: str, *data: str) -> dict:
    return {"keys": [name], "data": list(data)}


class FakeWallet:
    """WalletProvider double. Receipts are scripted per entrypoint."""

    address = "0x5e55"

    def __init__(self):
        self.calls: List[ContractCall] = []
        self.events: Dict[str, List[dict]] = {
            "start_game": [event("GameStarted", "0x2a", "0x5e55", "0x1")],
            "check_match": [event("CardsMatched", "0x2a")],
            "abandon_game": [event("GameAbandoned", "0x2a")],
            "submit_score": [event("ScoreSubmitted", "0x2a")],
        }
        self.execute_errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.contract_values: List[str] = []

    async def execute(self, call: ContractCall) -> str:
        self.calls.append(call)
        error = self.execute_errors.get(call.entrypoint)
        if error is not None:
            raise error
        return hex(len(self.calls))

    async def wait_for_transaction(self, transaction_hash: str) -> dict:
        call = self.calls[int(transaction_hash, 16) - 1]
        gate = self.gates.get(call.entrypoint)
        if gate is not None:
            await gate.wait()
        events = self.events.get(call.entrypoint)
        if events is None and call.entrypoint == "flip_card":
            # echo the flipped tile unless a test scripted the receipt
            session_id, tile_index = (int(value) for value in call.calldata)
            events = [event("CardFlipped", hex(session_id), hex(tile_index))]
        return make_receipt(transaction_hash, events)

    async def call_contract(self, call: ContractCall) -> List[str]:
        self.calls.append(call)
        return self.contract_values

    def entrypoints(self) -> List[str]:
        return [call.entrypoint for call in self.calls]




def message(payload) -> dict:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return {"type": "message", "channel": "account_updates", "data": data}


class FakePubSub:
    """Replays scripted messages; an Exception item is raised instead of returned."""

    def __init__(self, items, unsubscribe_error: Exception | None = None):
        self.items = list(items)
        self.unsubscribe_error = unsubscribe_error
        self.subscribed: List[str] = []
        self.unsubscribed: List[str] = []
        self.closed = False

    async def subscribe(self, topic: str) -> None:
        self.subscribed.append(topic)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float | None = None):
        if not self.items:
            await asyncio.sleep(0.01)
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def unsubscribe(self, topic: str) -> None:
        if self.unsubscribe_error is not None:
            raise self.unsubscribe_error
        self.unsubscribed.append(topic)

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    def __init__(self, pubsub: FakePubSub):
        self._pubsub = pubsub
        self.closed = False

    def pubsub(self) -> FakePubSub:
        return self._pubsub

    async def aclose(self) -> None:
        self.closed = True


class RedisFactory:
    """Hands out one FakeRedis per connection attempt."""

    def __init__(self, *connections: FakeRedis):
        self.connections = list(connections)
        self.created: List[FakeRedis] = []

    def __call__(self) -> FakeRedis:
        connection = self.connections.pop(0) if self.connections else FakeRedis(FakePubSub([]))
        self.created.append(connection)
        return connection
