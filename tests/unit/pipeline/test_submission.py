"""GraphQL transport and the submission stage."""

import json

import httpx
import pytest

from cell_capture.config import FrozenConfig
from cell_capture.core.exceptions import ConfigurationError, SubmissionError
from cell_capture.core.types import Cancelled, Failure, SubmittedCommand, Success
from cell_capture.pipeline.payloads import build_payload
from cell_capture.pipeline.single_flight import CancellationToken
from cell_capture.pipeline.submission import GraphQLTransport, SubmissionClient
from tests.helpers import SESSION, FakeTransport, make_built, make_initial, make_record

pytestmark = pytest.mark.unit

URL = "https://api.example.com/graphql"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_transport_posts_mutation_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"createCellExecution": {"id": "x"}}})

    payload = build_payload(make_record())
    async with _client(handler) as client:
        result = await GraphQLTransport(URL, client=client).mutate(payload, SESSION)

    assert result == {"data": {"createCellExecution": {"id": "x"}}}
    assert seen["auth"] == "Bearer token-123"
    assert seen["body"]["operationName"] == "CreateCellExecution"
    assert seen["body"]["query"] == payload.document
    assert seen["body"]["variables"]["input"]["pid"] == 4242


@pytest.mark.asyncio
async def test_http_error_status_is_reported():
    async with _client(lambda _r: httpx.Response(503)) as client:
        with pytest.raises(SubmissionError) as ei:
            await GraphQLTransport(URL, client=client).mutate(
                build_payload(make_record()), SESSION
            )

    assert ei.value.status_code == 503


@pytest.mark.asyncio
async def test_graphql_errors_are_reported():
    body = {"errors": [{"message": "unauthorized"}, {"message": "try again"}]}
    async with _client(lambda _r: httpx.Response(200, json=body)) as client:
        with pytest.raises(SubmissionError, match="unauthorized; try again"):
            await GraphQLTransport(URL, client=client).mutate(
                build_payload(make_record()), SESSION
            )


@pytest.mark.asyncio
async def test_invalid_json_is_reported():
    async with _client(lambda _r: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(SubmissionError, match="invalid JSON"):
            await GraphQLTransport(URL, client=client).mutate(
                build_payload(make_record()), SESSION
            )


@pytest.mark.asyncio
async def test_timeout_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with _client(handler) as client:
        with pytest.raises(SubmissionError, match="timed out"):
            await GraphQLTransport(URL, client=client).mutate(
                build_payload(make_record()), SESSION
            )


@pytest.mark.asyncio
async def test_connection_error_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(SubmissionError, match="Failed to reach"):
            await GraphQLTransport(URL, client=client).mutate(
                build_payload(make_record()), SESSION
            )


def test_from_config_requires_api_url():
    with pytest.raises(ConfigurationError):
        GraphQLTransport.from_config(FrozenConfig())


def test_from_config_uses_configured_endpoint_and_timeout():
    transport = GraphQLTransport.from_config(
        FrozenConfig(api_url=URL, request_timeout_seconds=5)
    )

    assert transport.url == URL
    assert transport.timeout == 5


@pytest.mark.asyncio
async def test_submission_stage_sends_once_with_session():
    transport = FakeTransport({"data": {"id": "exec-9"}})
    built = make_built()

    result = await SubmissionClient(transport).handle(built)

    assert isinstance(result, Success)
    assert isinstance(result.value, SubmittedCommand)
    assert result.value.result == {"data": {"id": "exec-9"}}
    assert len(transport.calls) == 1
    assert transport.calls[0] == (built.payload, SESSION)


@pytest.mark.asyncio
async def test_submission_stage_skips_call_for_cancelled_run():
    token = CancellationToken(3)
    token.cancel()
    transport = FakeTransport()

    result = await SubmissionClient(transport).handle(
        make_built(make_initial(token=token))
    )

    assert result == Success(Cancelled(3))
    assert transport.calls == []


@pytest.mark.asyncio
async def test_submission_stage_reports_transport_failure():
    transport = FakeTransport(error=SubmissionError("HTTP error 500"))

    result = await SubmissionClient(transport).handle(make_built())

    assert isinstance(result, Failure)
    assert str(result.error) == "HTTP error 500"


@pytest.mark.asyncio
async def test_submission_stage_wraps_unexpected_errors():
    transport = FakeTransport(error=RuntimeError("socket closed"))

    result = await SubmissionClient(transport).handle(make_built())

    assert isinstance(result.error, SubmissionError)
    assert str(result.error) == "socket closed"
