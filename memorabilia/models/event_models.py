from typing import List, Literal, Optional, Union

from pydantic import BaseModel

from memorabilia.models.dc_models import Tile


class Started(BaseModel):
    kind: Literal["started"] = "started"
    session_ref: int
    # Only the local simulator knows the board; a remote board stays hidden.
    tiles: Optional[List[Tile]] = None


class Flipped(BaseModel):
    kind: Literal["flipped"] = "flipped"
    tile_index: int


class Matched(BaseModel):
    kind: Literal["matched"] = "matched"


class Mismatched(BaseModel):
    kind: Literal["mismatched"] = "mismatched"


class Completed(BaseModel):
    kind: Literal["completed"] = "completed"


class Abandoned(BaseModel):
    kind: Literal["abandoned"] = "abandoned"


DomainEvent = Union[Started, Flipped, Matched, Mismatched, Completed, Abandoned]
