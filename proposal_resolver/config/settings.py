import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# --------------------------------------------------
# Off-chain voting (Snapshot) Configuration
# --------------------------------------------------
SNAPSHOT_GRAPHQL_ENDPOINT = os.environ.get("SNAPSHOT_GRAPHQL_ENDPOINT")
SNAPSHOT_TESTNET_GRAPHQL_ENDPOINT = os.environ.get("SNAPSHOT_TESTNET_GRAPHQL_ENDPOINT")

# --------------------------------------------------
# On-chain governance (Aave V3) Configuration
# --------------------------------------------------
# Either a full subgraph URL, or a Graph gateway key plus subgraph id
AAVE_SUBGRAPH_URL = os.environ.get("AAVE_SUBGRAPH_URL")
GRAPH_API_KEY = os.environ.get("GRAPH_API_KEY")
AAVE_SUBGRAPH_ID = os.environ.get("AAVE_SUBGRAPH_ID")

# Markdown document store (vote.onaave.com style); document tier is skipped when unset
AAVE_DOCUMENT_URL = os.environ.get("AAVE_DOCUMENT_URL")

ETH_RPC_URL = os.environ.get("ETH_RPC_URL")
AAVE_GOVERNANCE_V3_ADDRESS = os.environ.get("AAVE_GOVERNANCE_V3_ADDRESS")

# --------------------------------------------------
# Tally Configuration
# --------------------------------------------------
TALLY_API_URL = os.environ.get("TALLY_API_URL")
TALLY_API_KEY = os.environ.get("TALLY_API_KEY")

# --------------------------------------------------
# Fetch / Cache Configuration
# --------------------------------------------------
PROPOSAL_CACHE_TTL_MS = os.environ.get("PROPOSAL_CACHE_TTL_MS")
FETCH_TIMEOUT_SECONDS = os.environ.get("FETCH_TIMEOUT_SECONDS")
FETCH_MAX_ATTEMPTS = os.environ.get("FETCH_MAX_ATTEMPTS")
FETCH_BASE_DELAY_MS = os.environ.get("FETCH_BASE_DELAY_MS")
