import logging
from typing import Dict, Type

from pydantic import BaseModel, ValidationError

from memorabilia.converter import DataConverter, parse_felt
from memorabilia.exceptions import MalformedReceipt, ProviderError
from memorabilia.models.dc_models import GameStateSnapshot
from memorabilia.models.event_models import (
    Abandoned,
    Completed,
    DomainEvent,
    Flipped,
    Matched,
    Mismatched,
    Started,
)
from memorabilia.models.operation_models import CallResult, LocalOutcome, RawOutcome, RemoteReceipt
from memorabilia.models.schema_models import ReceiptEventSchema, ReceiptSchemaV06, ReceiptSchemaV07

RECEIPT_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "v0_6": ReceiptSchemaV06,
    "v0_7": ReceiptSchemaV07,
}


def _started(entry: ReceiptEventSchema) -> DomainEvent:
    return Started(session_ref=parse_felt(entry.data[0]))


def _flipped(entry: ReceiptEventSchema) -> DomainEvent:
    # data: game_id, card_index, ...
    return Flipped(tile_index=parse_felt(entry.data[1]))


EVENT_DECODERS = {
    "GameStarted": _started,
    "CardFlipped": _flipped,
    "CardsMatched": lambda entry: Matched(),
    "CardsMismatched": lambda entry: Mismatched(),
    "GameCompleted": lambda entry: Completed(),
    "GameAbandoned": lambda entry: Abandoned(),
}


class ReceiptEventExtractor:
    """Decode execution outcomes into the DomainEvent the session controller applies."""

    def __init__(self, converter: DataConverter | None = None):
        self.converter = converter or DataConverter()

    def decode(self, outcome: RawOutcome) -> DomainEvent:
        """Decode one outcome into one domain event

        Args:
            outcome (RawOutcome): LocalOutcome from the simulator or RemoteReceipt from the executor

        Raises:
            MalformedReceipt: Unknown receipt shape, no known event, or undecodable payload
            ProviderError: The receipt reports a reverted execution

        Returns:
            DomainEvent: The first known event of the outcome
        """
        if isinstance(outcome, LocalOutcome):
            if outcome.event is None:
                raise MalformedReceipt("Local outcome carries no event")
            return outcome.event
        if isinstance(outcome, RemoteReceipt):
            return self._decode_receipt(outcome)
        raise MalformedReceipt(f"Outcome of type {type(outcome).__name__} carries no event")

    def decode_state(self, outcome: RawOutcome) -> GameStateSnapshot:
        """Decode the outcome of a GetGameState read"""
        if isinstance(outcome, LocalOutcome) and outcome.snapshot is not None:
            return outcome.snapshot
        if isinstance(outcome, CallResult):
            return self.converter.convert_values_to_snapshot(outcome.values)
        raise MalformedReceipt(f"Outcome of type {type(outcome).__name__} carries no game state")

    def _decode_receipt(self, outcome: RemoteReceipt) -> DomainEvent:
        schema = RECEIPT_SCHEMAS.get(outcome.provider_version)
        if schema is None:
            raise MalformedReceipt(f"No receipt schema for provider version {outcome.provider_version}")
        try:
            receipt = schema.model_validate(outcome.payload)
        except ValidationError as e:
            raise MalformedReceipt(
                f"Receipt {outcome.transaction_hash} does not match {outcome.provider_version}: {e}"
            ) from e

        if getattr(receipt, "execution_status", "SUCCEEDED") == "REVERTED":
            raise ProviderError(f"Transaction {receipt.transaction_hash} reverted: {receipt.revert_reason}")

        for entry in receipt.events:
            if not entry.keys:
                continue
            decoder = EVENT_DECODERS.get(entry.keys[0])
            if decoder is None:
                continue
            try:
                event = decoder(entry)
            except (IndexError, ValueError) as e:
                raise MalformedReceipt(f"Cannot decode {entry.keys[0]} payload {entry.data}: {e!r}") from e
            logging.debug(f"Decoded {entry.keys[0]} from {receipt.transaction_hash}")
            return event

        raise MalformedReceipt(f"No known event in receipt {receipt.transaction_hash}")
