"""
Agent tool definitions.

Tools are registered with the LLM via bind_tools() and executed by
LangGraph's ToolNode inside the tools node. Add new tools here and to
ALL_TOOLS — they are automatically available to the agent.

Current tools:
  - get_current_datetime: trivial utility tool
  - get_balance:          native token balance of an address (JSON-RPC eth_getBalance)
"""

import re
from datetime import datetime, timezone
from decimal import Decimal

import httpx
from langchain_core.tools import tool

from chain_agent.core.config import get_settings

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def format_token_value(raw_value: int, decimals: int = 18) -> str:
    """Render a smallest-unit integer amount as a decimal token amount."""
    value = Decimal(raw_value) / (Decimal(10) ** decimals)
    return format(value.normalize(), "f")


@tool
def get_current_datetime() -> str:
    """Return the current UTC date and time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


@tool
async def get_balance(address: str) -> str:
    """
    Check the native token balance of a blockchain address.

    Args:
        address: A 0x-prefixed, 40 hex character account address.

    Returns:
        The balance in whole tokens, or an explanation if the address is invalid.
    """
    if not _ADDRESS_RE.match(address):
        return f"Invalid address: {address}"

    settings = get_settings()
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            settings.rpc_url,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_getBalance",
                "params": [address, "latest"],
            },
        )
        resp.raise_for_status()
        payload = resp.json()

    if "error" in payload:
        return f"RPC error: {payload['error'].get('message', payload['error'])}"

    balance = format_token_value(int(payload["result"], 16), settings.token_decimals)
    return f"Balance of {address}: {balance}"


# Exported list — used by build_chain_graph()
ALL_TOOLS = [get_current_datetime, get_balance]
