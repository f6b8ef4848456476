import asyncio
import json
from typing import Any, List

from aiohttp import ClientError, ClientSession, ClientTimeout
from aiohttp_retry import RetryClient, RandomRetry
from pydantic import BaseModel, ValidationError

from cosmos_exporter.exceptions import DecodeError, TransportError
from cosmos_exporter.models import BlocksLatest, NodeStatus, Validator, ValidatorSet

BLOCKS_LATEST_PATH = 'blocks/latest'
VALIDATOR_SET_PATH = 'validatorsets/latest'


class NodeApiClient:
    """Client for the node's REST API.

    Must be created inside a running event loop.
    """

    def __init__(self, base_url: str, timeout: float = 5, retry_attempts: int = 1):
        self.base_url = base_url.rstrip('/')
        self._client = RetryClient(
            client_session=ClientSession(timeout=ClientTimeout(total=timeout)),
            retry_options=RandomRetry(attempts=retry_attempts),
            raise_for_status=False,
        )

    async def __aenter__(self) -> 'NodeApiClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    async def get_json(self, path: str) -> Any:
        url = f'{self.base_url}/{path.lstrip("/")}'
        try:
            # the body is read in full so the connection goes back to the pool
            async with self._client.get(url) as response:
                body = await response.read()
        except (ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f'GET {url} failed: {e!r}') from e

        try:
            return json.loads(body)
        except ValueError as e:
            raise DecodeError(f'GET {url} returned invalid JSON: {e}') from e

    async def latest_block(self) -> NodeStatus:
        data = await self.get_json(BLOCKS_LATEST_PATH)
        return _decode(BlocksLatest, data, BLOCKS_LATEST_PATH).block.header

    async def validator_set(self) -> List[Validator]:
        data = await self.get_json(VALIDATOR_SET_PATH)
        return _decode(ValidatorSet, data, VALIDATOR_SET_PATH).result.validators


def _decode(model: type, data: Any, path: str) -> BaseModel:
    if not isinstance(data, dict):
        raise DecodeError(f'{path}: expected a JSON object, got {type(data).__name__}')
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f'{path}: unexpected response shape: {e}') from e
