"""Wire models for the node REST API and the address book file."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeStatus(BaseModel):
    """Header of the latest block: height and timestamp, both as the API sends them."""
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    height: str = ''
    time: str = ''


# GET /blocks/latest
class BlocksLatest(BaseModel):
    class Block(BaseModel):
        header: NodeStatus = Field(default_factory=NodeStatus)

    block: Block = Field(default_factory=Block)


class Validator(BaseModel):
    address: str


# GET /validatorsets/latest
class ValidatorSet(BaseModel):
    class Result(BaseModel):
        validators: List[Validator] = []

    result: Result = Field(default_factory=Result)


class AddrBookEntry(BaseModel):
    class Addr(BaseModel):
        ip: Optional[str] = None

    addr: Addr
