import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from proposal_resolver.config import settings

logger = logging.getLogger(__name__)


class PipelineConfig:
    """Static defaults loaded from pipeline_config.yaml."""

    _config = None
    _config_path = Path(__file__).parent / "pipeline_config.yaml"

    @classmethod
    def _load_config(cls) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if cls._config is None:
            try:
                with open(cls._config_path, 'r') as f:
                    cls._config = yaml.safe_load(f)
                if cls._config is None:
                    raise ValueError("Configuration file is empty or invalid")
            except FileNotFoundError:
                raise FileNotFoundError(f"Configuration file not found at {cls._config_path}. Please ensure pipeline_config.yaml exists.")
            except yaml.YAMLError as e:
                raise ValueError(f"Error parsing YAML configuration file: {e}")
        return cls._config

    @classmethod
    def get_section(cls, name: str) -> Dict[str, Any]:
        """Get one top-level section of the YAML config."""
        config = cls._load_config()
        return config.get(name, {})

    @classmethod
    def get_governance_abi(cls) -> List[Dict[str, Any]]:
        """Get the governance contract ABI used for on-chain reads."""
        return cls.get_section("aave")["governance_v3_abi"]


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or not str(value).strip():
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer setting value '{value}', using {default}")
        return default


class PipelineSettings(BaseModel):
    """Resolved runtime configuration for one pipeline instance."""

    snapshot_endpoint: str
    snapshot_testnet_endpoint: str
    snapshot_url_template: str
    snapshot_testnet_url_template: str

    aave_subgraph_url: Optional[str] = None
    aave_document_url: Optional[str] = None
    aave_governance_portal: str = "https://app.aave.com/governance"
    eth_rpc_url: Optional[str] = None
    governance_address: Optional[str] = None
    governance_abi: List[Dict[str, Any]] = Field(default_factory=list)
    vote_decimals: int = 18

    tally_api_url: str = "https://api.tally.xyz/query"
    tally_api_key: Optional[str] = None
    tally_url_template: str = "https://www.tally.xyz/gov/{organization}/proposal/{proposal_id}"

    fetch_timeout_seconds: float = 10.0
    fetch_max_attempts: int = Field(3, ge=1)
    fetch_base_delay_ms: int = Field(1000, ge=0)
    cache_ttl_ms: int = Field(300000, ge=0)

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineSettings":
        """Build settings from YAML defaults, then environment, then overrides."""
        snapshot = PipelineConfig.get_section("snapshot")
        aave = PipelineConfig.get_section("aave")
        tally = PipelineConfig.get_section("tally")
        fetch = PipelineConfig.get_section("fetch")
        cache = PipelineConfig.get_section("cache")

        subgraph_url = settings.AAVE_SUBGRAPH_URL
        if not subgraph_url and settings.GRAPH_API_KEY:
            subgraph_url = aave["subgraph_gateway_template"].format(
                api_key=settings.GRAPH_API_KEY,
                subgraph_id=settings.AAVE_SUBGRAPH_ID or aave["subgraph_id"],
            )

        values: Dict[str, Any] = {
            "snapshot_endpoint": settings.SNAPSHOT_GRAPHQL_ENDPOINT or snapshot["graphql_endpoint"],
            "snapshot_testnet_endpoint": settings.SNAPSHOT_TESTNET_GRAPHQL_ENDPOINT or snapshot["testnet_graphql_endpoint"],
            "snapshot_url_template": snapshot["proposal_url_template"],
            "snapshot_testnet_url_template": snapshot["testnet_proposal_url_template"],
            "aave_subgraph_url": subgraph_url,
            "aave_document_url": settings.AAVE_DOCUMENT_URL,
            "aave_governance_portal": aave["governance_portal"],
            "eth_rpc_url": settings.ETH_RPC_URL,
            "governance_address": settings.AAVE_GOVERNANCE_V3_ADDRESS or aave["governance_v3_address"],
            "governance_abi": PipelineConfig.get_governance_abi(),
            "vote_decimals": aave.get("vote_decimals", 18),
            "tally_api_url": settings.TALLY_API_URL or tally["api_url"],
            "tally_api_key": settings.TALLY_API_KEY,
            "tally_url_template": tally["proposal_url_template"],
            "fetch_timeout_seconds": float(settings.FETCH_TIMEOUT_SECONDS or fetch.get("timeout_seconds", 10)),
            "fetch_max_attempts": _env_int(settings.FETCH_MAX_ATTEMPTS, fetch.get("max_attempts", 3)),
            "fetch_base_delay_ms": _env_int(settings.FETCH_BASE_DELAY_MS, fetch.get("base_delay_ms", 1000)),
            "cache_ttl_ms": _env_int(settings.PROPOSAL_CACHE_TTL_MS, cache.get("ttl_ms", 300000)),
        }
        values.update(overrides)
        return cls(**values)
