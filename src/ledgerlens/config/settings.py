from decimal import Decimal
import os
from dotenv import load_dotenv
load_dotenv()


def _csv_env(name: str, default: str) -> list:
    raw = os.environ.get(name, default)
    return [s.strip() for s in raw.split(",") if s.strip()]


# ---- XRPL JSON-RPC nodes (tried in order, first healthy one wins) ----
XRPL_SERVERS = _csv_env(
    "XRPL_SERVERS",
    "https://s1.ripple.com:51234/,https://s2.ripple.com:51234/,https://xrplcluster.com/",
)
XRPL_TIMEOUT_SEC = int(os.environ.get("XRPL_TIMEOUT_SEC", "10"))
XRPL_MAX_RETRIES = int(os.environ.get("XRPL_MAX_RETRIES", "2"))
XRPL_REQUESTS_PER_SEC = float(os.environ.get("XRPL_REQUESTS_PER_SEC", "5.0"))

# ---- Ledger constants ----
DROPS_PER_XRP = Decimal("1000000")
XRP_CURRENCY = "XRP"
RIPPLE_EPOCH_OFFSET = 946684800     # seconds between Unix epoch and 2000-01-01

# ---- History / tracing ----
HISTORY_PAGE_SIZE = int(os.environ.get("HISTORY_PAGE_SIZE", "100"))
TRACE_HISTORY_LIMIT = 50
TRACE_MAX_HOPS = int(os.environ.get("TRACE_MAX_HOPS", "10"))

# ----- Pricing ------
COINGECKO_PRICE_URL = os.environ.get(
    "COINGECKO_PRICE_URL",
    "https://api.coingecko.com/api/v3/simple/price?ids=ripple&vs_currencies=usd",
)
PRICE_TIMEOUT_SEC = 10

# Stablecoins pegged 1:1 to USD
STABLECOIN_USD = {
    "RLUSD": Decimal("1"),
}

# Currencies whose amount is read as USD when valuing a DEX trade
USD_LIKE_CURRENCIES = ("USD", "RLUSD")

# ----- Known address labels -----
KNOWN_ADDRESSES_URL = os.environ.get(
    "KNOWN_ADDRESSES_URL", "https://api.xrpscan.com/api/v1/names/well-known"
)
LABELS_TIMEOUT_SEC = 10

# ----- Logging -----
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "console").strip().lower()
