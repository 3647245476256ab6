"""
Integration tests: the keepalive engine against a live HTTP staking
authority that verifies signatures the way the real service does.
"""

import json

import pytest
from aiohttp import web
from aiohttp import test_utils
from eth_account import Account
from eth_account.messages import encode_defunct

from staking_node.constants import (
    HEADER_CHALLENGE,
    HEADER_COLD_WALLET,
    HEADER_HOT_WALLET,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
)
from staking_node.keepalive import KeepAlive
from staking_node.wallet import keepalive_digest


class StakingAuthority:
    """Records keepalive requests and answers with a scripted status."""

    def __init__(self):
        self.requests = []
        self.status = 200
        self.message = "keepalive accepted"

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.text()
        timestamp = int(request.headers[HEADER_TIMESTAMP])
        challenge = request.headers.get(HEADER_CHALLENGE)
        digest = keepalive_digest(timestamp, body, challenge)
        signature = bytes.fromhex(request.headers[HEADER_SIGNATURE][2:])
        signer = Account.recover_message(encode_defunct(primitive=digest), signature=signature)

        self.requests.append(
            {
                "body": json.loads(body),
                "signer": signer,
                "hot_wallet": request.headers[HEADER_HOT_WALLET],
                "cold_wallet": request.headers.get(HEADER_COLD_WALLET),
                "challenge": challenge,
                "content_type": request.content_type,
            }
        )
        return web.json_response({"message": self.message}, status=self.status)


@pytest.fixture
async def authority():
    authority = StakingAuthority()
    app = web.Application()
    app.router.add_post("/keepalive", authority.handle)
    server = test_utils.TestServer(app, host="127.0.0.1")
    await server.start_server()
    authority.url = str(server.make_url(""))
    yield authority
    await server.close()


def make_keepalive(authority, identity, fake_worker, clock, tmp_path, challenge=None):
    return KeepAlive(
        identity,
        fake_worker,
        staking_host=authority.url,
        challenge=challenge,
        downtime_log=tmp_path / "downtime.log",
        clock=clock,
        timeout=5,
    )


async def test_signed_keepalive_is_accepted(
    authority, staking_identity, fake_worker, clock, tmp_path
):
    keepalive = make_keepalive(
        authority, staking_identity, fake_worker, clock, tmp_path, challenge="c-123"
    )

    await keepalive.tick()

    assert len(authority.requests) == 1
    request = authority.requests[0]
    assert request["signer"] == staking_identity.hot_wallet
    assert request["hot_wallet"] == staking_identity.hot_wallet
    assert request["cold_wallet"] == staking_identity.cold_wallet
    assert request["challenge"] == "c-123"
    assert request["content_type"] == "application/json"
    assert request["body"] == {
        "version": keepalive.version,
        "blockNumber": fake_worker.current_block,
        "timestamp": int(clock.now * 1000),
    }

    assert keepalive.state.has_been_online
    assert fake_worker.statuses[-1]["keepAlive"] == {
        "status": 200,
        "timestamp": int(clock.now * 1000),
        "message": "keepalive accepted",
    }


async def test_rejected_keepalive_is_recorded_offline(
    authority, staking_identity, fake_worker, clock, tmp_path
):
    authority.status = 503
    authority.message = "staking paused"
    keepalive = make_keepalive(authority, staking_identity, fake_worker, clock, tmp_path)

    await keepalive.tick()

    assert authority.requests[0]["challenge"] is None
    assert not keepalive.state.has_been_online
    outcome = fake_worker.statuses[-1]["keepAlive"]
    assert outcome["status"] == 503
    assert outcome["message"] == "staking paused"


async def test_unreachable_authority_is_offline(staking_identity, fake_worker, clock, tmp_path):
    keepalive = KeepAlive(
        staking_identity,
        fake_worker,
        staking_host="http://127.0.0.1:9",
        downtime_log=tmp_path / "downtime.log",
        clock=clock,
        timeout=2,
    )

    await keepalive.tick()

    outcome = fake_worker.statuses[-1]["keepAlive"]
    assert outcome["status"] is None
    assert not keepalive.state.has_been_online
