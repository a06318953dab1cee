"""
Lazy on-chain client for the Aave Governance V3 contract.

web3 is an optional dependency (the `onchain` extra). It is imported on first
use and the resulting client is cached for the process; when the library or
the RPC configuration is missing every read returns None.
"""
import asyncio
from typing import Any, Dict, List, Optional

from proposal_resolver.exceptions import SourceUnavailableError
from proposal_resolver.utils.logger import logger

ONCHAIN_CALL_TIMEOUT_SECONDS = 10.0

_web3_module = None
_web3_load_attempted = False
_clients: Dict[str, "GovernanceContractClient"] = {}


def load_web3():
    """Import web3 once per process. Returns the module or None."""
    global _web3_module, _web3_load_attempted
    if _web3_load_attempted:
        return _web3_module

    _web3_load_attempted = True
    try:
        import web3
        _web3_module = web3
        logger.info(f"[OnChain] web3 {getattr(web3, '__version__', '')} loaded")
    except ImportError as e:
        logger.info(f"[OnChain] web3 not available, on-chain reads disabled: {e}")
        _web3_module = None
    return _web3_module


class GovernanceContractClient:
    """Thin async wrapper over the governance contract's view functions."""

    def __init__(self, contract: Any):
        self.contract = contract

    async def get_proposal(self, proposal_id: int) -> Any:
        return await self.contract.functions.getProposal(proposal_id).call()

    async def get_proposal_state(self, proposal_id: int) -> int:
        return await self.contract.functions.getProposalState(proposal_id).call()


def get_onchain_client(
    rpc_url: Optional[str],
    contract_address: Optional[str],
    abi: Optional[List[Dict[str, Any]]],
) -> Optional[GovernanceContractClient]:
    """
    Get (or build once) the governance contract client.

    Returns None if web3 cannot be loaded or if the RPC URL, contract
    address or ABI is not configured.
    """
    if not rpc_url or not contract_address or not abi:
        logger.debug("[OnChain] RPC URL, contract address or ABI not configured")
        return None

    cache_key = f"{rpc_url}|{contract_address.lower()}"
    if cache_key in _clients:
        return _clients[cache_key]

    web3 = load_web3()
    if web3 is None:
        return None

    try:
        w3 = web3.AsyncWeb3(web3.AsyncWeb3.AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(address=web3.AsyncWeb3.to_checksum_address(contract_address), abi=abi)
    except Exception as e:
        logger.warning(f"[OnChain] Failed to initialize contract client: {e}")
        return None

    client = GovernanceContractClient(contract)
    _clients[cache_key] = client
    return client


def reset_onchain_clients() -> None:
    """Drop cached clients and the web3 load result."""
    global _web3_module, _web3_load_attempted
    _clients.clear()
    _web3_module = None
    _web3_load_attempted = False


async def read_proposal(
    client: GovernanceContractClient,
    proposal_id: int,
    timeout: float = ONCHAIN_CALL_TIMEOUT_SECONDS,
) -> Optional[Dict[str, Any]]:
    """
    Read one proposal struct plus its current state.

    Returns a dict with the struct fields and `state`, or None when the
    contract does not know the id. Call errors propagate to the caller.
    """
    raw = await asyncio.wait_for(client.get_proposal(proposal_id), timeout=timeout)
    if not raw:
        return None
    if len(raw) < 9:
        raise SourceUnavailableError("on-chain", f"Unexpected getProposal result for {proposal_id}: {raw!r}")

    (raw_id, creator, start_time, end_time, for_votes, against_votes, struct_state, executed, canceled) = raw[:9]
    if str(raw_id) != str(proposal_id):
        logger.debug(f"[OnChain] Proposal {proposal_id} does not exist on-chain (got id {raw_id})")
        return None

    try:
        state = await asyncio.wait_for(client.get_proposal_state(proposal_id), timeout=timeout)
    except Exception as e:
        logger.debug(f"[OnChain] getProposalState failed, using struct state: {e}")
        state = struct_state

    return {
        "id": int(raw_id),
        "creator": creator,
        "start_time": int(start_time) if start_time else None,
        "end_time": int(end_time) if end_time else None,
        "for_votes": int(for_votes) if for_votes is not None else None,
        "against_votes": int(against_votes) if against_votes is not None else None,
        "state": int(state) if state is not None else 0,
        "executed": bool(executed),
        "canceled": bool(canceled),
    }
