"""
Tests for the Tezos RPC data source endpoints against a local fake node.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from ionic_tezos_client.block.block import NotRunningTestChainStatus
from ionic_tezos_client.block.operations import (
    ContractBalanceUpdate,
    DelegationOperationElem,
    EndorsementOperationElem,
    FreezerBalanceUpdate,
    GenericOperationElem,
    OperationWithError,
    RevealOperationElem,
    TransactionOperationElem,
)
from ionic_tezos_client.data_source.rpc.dispatcher import DispatchOutcome
from ionic_tezos_client.data_source.rpc.rpc_data_source import TezosRPCDataSource
from ionic_tezos_client.errors import (
    DecodeError,
    EmptyRPCError,
    HTTPStatusError,
    RPCProtocolError,
)
from ionic_tezos_client.network.network import NetworkAddress, NetworkConnectionTime

BOOTSTRAPPED = (b'{"block": "BLockGenesisGenesisGenesisGenesisGenesisf79b5d1CoW2", "timestamp": "2018-06-30T16:07:32Z"}\n'
                b'{"block": "BLvf2VfqEiQDn3VgjVFHD7BSPDq4jAJxGDpH7U7hakSrvD8kGzb", "timestamp": "2018-11-01T10:56:27Z"}\n')


def test_url_is_required(monkeypatch):
    monkeypatch.delenv("TEZOS_RPC_URL", raising=False)

    with pytest.raises(ValueError):
        TezosRPCDataSource()


def test_url_from_environment(monkeypatch):
    monkeypatch.setenv("TEZOS_RPC_URL", "http://localhost:8732")
    monkeypatch.setenv("TEZOS_RPC_TIMEOUT", "7")

    source = TezosRPCDataSource()

    assert source.rpc_url == "http://localhost:8732"
    assert source.client.timeout.total == 7.0


# =============================================================================
# Network
# =============================================================================

@pytest.mark.asyncio
async def test_get_network_stats(node, data_source):
    node.respond_fixture("/network/stat", "network/stat.json")

    stats = await data_source.get_network_stats()

    assert stats.total_sent == 291690080
    assert stats.total_recv == 532639553
    assert stats.current_inflow == 23596
    assert stats.current_outflow == 14972


@pytest.mark.asyncio
async def test_get_network_connections(node, data_source):
    node.respond_fixture("/network/connections", "network/connections.json")

    connections = await data_source.get_network_connections()

    assert len(connections) == 2
    assert connections[0].peer_id == "idt5qvkLiJ15rb6yJU1bjpGmdyYnPJ"
    assert connections[0].id_point == NetworkAddress(addr="::ffff:34.253.64.43", port=9732)
    assert connections[0].versions[0].name == "TEZOS_ALPHANET_2018-07-31T16:22:39Z"
    assert connections[1].incoming
    assert connections[1].remote_metadata.private_node


@pytest.mark.asyncio
async def test_get_network_peers(node, data_source):
    node.respond_fixture("/network/peers", "network/peers.json")

    peers = await data_source.get_network_peers()

    assert [p.peer_id for p in peers] == ["idrnHcGMrFxiYsmxf5Cqd6NhUTUU8X", "idsXeq1QjtmPpLBp4SNAcFvdpmVt7L"]
    assert peers[0].state == "running"
    assert peers[0].stat.total_recv == 14306045
    assert peers[0].last_seen == NetworkConnectionTime(
        NetworkAddress(addr="::ffff:45.79.146.133", port=39732),
        datetime(2018, 11, 13, 19, 1, 59, tzinfo=timezone.utc),
    )
    assert peers[0].last_miss is None
    assert peers[1].trusted
    assert peers[1].last_miss.address.port == 9732
    assert node.last_request.query_string == ""


@pytest.mark.asyncio
async def test_get_network_peers_with_filter(node, data_source):
    node.respond_fixture("/network/peers", "network/peers.json")

    await data_source.get_network_peers("running")

    assert node.last_request.query["filter"] == "running"


@pytest.mark.asyncio
async def test_get_network_peer(node, data_source):
    node.respond_fixture("/network/peers/idrnHcGMrFxiYsmxf5Cqd6NhUTUU8X", "network/peer.json")

    peer = await data_source.get_network_peer("idrnHcGMrFxiYsmxf5Cqd6NhUTUU8X")

    assert peer.peer_id == "idrnHcGMrFxiYsmxf5Cqd6NhUTUU8X"
    assert peer.reachable_at.port == 39732
    assert peer.stat.total_sent == 4908012
    assert peer.last_established_connection.time == datetime(2018, 11, 13, 19, 1, 59, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_ban_and_trust_network_peer(node, data_source):
    node.respond("/network/peers/idPeer/ban", b"")
    node.respond("/network/peers/idPeer/trust", b"")

    await data_source.ban_network_peer("idPeer")
    await data_source.trust_network_peer("idPeer")

    assert [r.path for r in node.requests] == ["/network/peers/idPeer/ban", "/network/peers/idPeer/trust"]


@pytest.mark.asyncio
async def test_get_network_peer_banned(node, data_source):
    node.respond("/network/peers/idPeer/banned", b"true")

    assert await data_source.get_network_peer_banned("idPeer") is True


@pytest.mark.asyncio
async def test_get_network_peer_log(node, data_source):
    node.respond_fixture("/network/peers/idPeer/log", "network/peer_log.json")

    log = await data_source.get_network_peer_log("idPeer")

    assert [e.kind for e in log] == ["incoming_request", "connection_established"]
    assert log[0].address == NetworkAddress(addr="::ffff:104.248.233.63", port=9732)


@pytest.mark.asyncio
async def test_monitor_network_peer_log(node, data_source, fixture_bytes):
    batch = fixture_bytes("network/peer_log.json")
    node.stream("/network/peers/idPeer/log?monitor", [batch, b"\n", batch])
    queue = asyncio.Queue()

    outcome = await data_source.monitor_network_peer_log("idPeer", queue, asyncio.Event())

    assert outcome is DispatchOutcome.COMPLETED
    assert queue.qsize() == 2
    first = queue.get_nowait()
    assert [e.kind for e in first] == ["incoming_request", "connection_established"]


@pytest.mark.asyncio
async def test_iter_network_peer_log(node, data_source, fixture_bytes):
    node.stream("/network/peers/idPeer/log?monitor", [fixture_bytes("network/peer_log.json")])

    batches = [batch async for batch in data_source.iter_network_peer_log("idPeer")]

    assert len(batches) == 1
    assert batches[0][1].kind == "connection_established"


# =============================================================================
# Balances
# =============================================================================

@pytest.mark.asyncio
async def test_get_delegate_balance(node, data_source):
    node.respond_fixture(
        "/chains/main/blocks/head/context/delegates/tz3WXYtyDUNL91qfiCJtVUX746QpNv5i5ve5/balance",
        "contract/delegate_balance.json",
    )

    balance = await data_source.get_delegate_balance("main", "head", "tz3WXYtyDUNL91qfiCJtVUX746QpNv5i5ve5")

    assert balance == "13490453135591"


@pytest.mark.asyncio
async def test_get_contract_balance(node, data_source):
    node.respond_fixture(
        "/chains/main/blocks/head/context/contracts/tz1Qmvis8GsRdWdbAbWwomCdyjD9kGgeHv1q/balance",
        "contract/contract_balance.json",
    )

    balance = await data_source.get_contract_balance("main", "head", "tz1Qmvis8GsRdWdbAbWwomCdyjD9kGgeHv1q")

    assert balance == "4700354460878"


# =============================================================================
# Blocks and operations
# =============================================================================

@pytest.mark.asyncio
async def test_get_block(node, data_source):
    node.respond_fixture("/chains/main/blocks/head", "block/block.json")

    block = await data_source.get_block("main", "head")

    assert block.hash == "BLnoArJNPCyYFK2z3Mnomi36Jo3FwrjriJ6hvzgTJGYYDKEkDXm"
    assert block.header.level == 169031
    assert block.header.fitness_bytes == [b"\x00", bytes.fromhex("00000000004e8eb3")]
    assert block.header.timestamp == datetime(2018, 11, 1, 10, 56, 27, tzinfo=timezone.utc)
    assert isinstance(block.metadata.test_chain_status, NotRunningTestChainStatus)
    assert block.metadata.level.cycle == 41
    assert [type(u) for u in block.metadata.balance_updates] == [ContractBalanceUpdate, FreezerBalanceUpdate]
    assert block.metadata.balance_updates[0].change == -16000000

    assert [len(ops) for ops in block.operations] == [1, 0, 0, 1]
    endorsement = block.operations[0][0].contents[0]
    assert isinstance(endorsement, EndorsementOperationElem)
    assert endorsement.metadata.slots == [29, 27, 20, 17]
    assert [u.change for u in endorsement.metadata.balance_updates] == [-64000000, 64000000, 2000000]

    contents = block.operations[3][0].contents
    assert [type(c) for c in contents] == [RevealOperationElem, TransactionOperationElem, GenericOperationElem]
    assert contents[1].destination == "KT1Hkg5qeNhfwpKW4fXvq7HGZB9z2EnmCCA9"
    assert contents[1].metadata.balance_updates[1].category == "fees"
    assert contents[2].kind == "double_baking_evidence"


@pytest.mark.asyncio
async def test_get_block_with_malformed_operation(node, data_source):
    node.respond(
        "/chains/main/blocks/head",
        (b'{"protocol": "P", "chain_id": "C", "hash": "B",'
         b' "header": {"level": 1, "proto": 1, "predecessor": "B0", "timestamp": "2018-11-01T10:56:27Z",'
         b' "validation_pass": 4, "operations_hash": "L", "fitness": [], "context": "Co", "signature": "sig"},'
         b' "metadata": {"protocol": "P", "next_protocol": "P", "test_chain_status": {"status": "not_running"},'
         b' "max_operations_ttl": 60, "max_operation_data_length": 1, "max_block_header_length": 1,'
         b' "max_operation_list_length": []},'
         b' "operations": [[{"branch": "B0", "contents": [{"kind": "reveal", "source": "tz1"}]}]]}'),
    )

    with pytest.raises(DecodeError) as exc_info:
        await data_source.get_block("main", "head")

    assert exc_info.value.discriminator == "reveal"


@pytest.mark.asyncio
async def test_get_mempool_pending_operations(node, data_source):
    node.respond_fixture("/chains/main/mempool/pending_operations", "mempool/pending_operations.json")

    mempool = await data_source.get_mempool_pending_operations()

    assert mempool.applied[0].hash == "oo9cGyyfmbAaAUnrkN76QCbNFUdBLRFxbTAGrk8mUEoq4iNTahE"
    assert isinstance(mempool.applied[0].contents[0], EndorsementOperationElem)

    refused = mempool.refused[0]
    assert isinstance(refused, OperationWithError)
    assert refused.hash == "onrBYBYAEP9tGHHkvwvMC9MCbYMPNEgjCd4Bjdz1BHJCwFSsjue"
    assert isinstance(refused.contents[0], TransactionOperationElem)
    assert refused.error[0].kind == "temporary"
    assert refused.error[0].id == "proto.002-PsYLVpVv.contract.balance_too_low"

    assert mempool.branch_refused == []
    assert mempool.unprocessed[0].hash == "opCCqmpKLdTn3WGkDMq3jzTkc8B7vXbZGsJjMqLEQmV7Cz6FnqX"
    assert isinstance(mempool.unprocessed[0].contents[0], DelegationOperationElem)


# =============================================================================
# Monitoring
# =============================================================================

@pytest.mark.asyncio
async def test_get_bootstrapped(node, data_source):
    node.stream("/monitor/bootstrapped", [BOOTSTRAPPED[:50], BOOTSTRAPPED[50:]])
    queue = asyncio.Queue()

    outcome = await data_source.get_bootstrapped(queue)

    assert outcome is DispatchOutcome.COMPLETED
    assert queue.get_nowait().block == "BLockGenesisGenesisGenesisGenesisGenesisf79b5d1CoW2"
    assert queue.get_nowait().timestamp == datetime(2018, 11, 1, 10, 56, 27, tzinfo=timezone.utc)
    assert queue.empty()


@pytest.mark.asyncio
async def test_iter_bootstrapped(node, data_source):
    node.stream("/monitor/bootstrapped", [BOOTSTRAPPED])

    blocks = [b.block async for b in data_source.iter_bootstrapped()]

    assert blocks == [
        "BLockGenesisGenesisGenesisGenesisGenesisf79b5d1CoW2",
        "BLvf2VfqEiQDn3VgjVFHD7BSPDq4jAJxGDpH7U7hakSrvD8kGzb",
    ]


# =============================================================================
# Errors and health
# =============================================================================

@pytest.mark.asyncio
async def test_rpc_error_message(node, data_source, fixture_bytes):
    node.respond("/chains/main/blocks/head", fixture_bytes("error.json"), status=500)

    with pytest.raises(RPCProtocolError) as exc_info:
        await data_source.get_block("main", "head")

    assert str(exc_info.value) == 'tezos: RPC error (kind = "permanent", id = "proto.002-PsYLVpVv.context.storage_error")'


@pytest.mark.asyncio
async def test_empty_rpc_error(node, data_source, fixture_bytes):
    node.respond("/network/stat", fixture_bytes("empty_error.json"), status=500)

    with pytest.raises(EmptyRPCError):
        await data_source.get_network_stats()


@pytest.mark.asyncio
async def test_malformed_rpc_error(node, data_source, fixture_bytes):
    node.respond("/network/stat", fixture_bytes("malformed_error.json"), status=500)

    with pytest.raises(DecodeError, match="tezos: error decoding RPC error: "):
        await data_source.get_network_stats()


@pytest.mark.asyncio
async def test_unknown_path(node, data_source):
    with pytest.raises(HTTPStatusError) as exc_info:
        await data_source.get_network_peer_banned("idPeer")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_health_check(node, data_source):
    node.respond_fixture("/network/stat", "network/stat.json")

    assert await data_source.health_check()


@pytest.mark.asyncio
async def test_health_check_on_error(node, data_source):
    node.respond("/network/stat", b"", status=503, content_type="text/plain")

    assert not await data_source.health_check()


@pytest.mark.asyncio
async def test_health_check_when_disconnected(node):
    source = TezosRPCDataSource(node.url)

    assert not await source.health_check()


@pytest.mark.asyncio
async def test_context_manager(node):
    node.respond_fixture("/network/stat", "network/stat.json")

    async with TezosRPCDataSource(node.url) as source:
        assert source.is_connected
        stats = await source.get_network_stats()

    assert stats.current_inflow == 23596
    assert not source.is_connected
