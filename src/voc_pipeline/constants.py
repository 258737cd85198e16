"""Application-wide constants."""

# Fetching
DEFAULT_FETCH_TIMEOUT = 20  # Hard per-call timeout for page fetches (seconds)
DEFAULT_VALIDATION_TIMEOUT = 10  # Timeout for source existence/relevance checks (seconds)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
SCRAPER_API_ENDPOINT = "http://api.scraperapi.com"  # Remote rendering proxy

# Parsing
MIN_PLATFORM_REVIEW_LENGTH = 10  # Minimum characters for a platform-matched review
MIN_GENERIC_REVIEW_LENGTH = 20  # Minimum characters for a generic-fallback review
MAX_GENERIC_REVIEW_LENGTH = 5000  # Longer blocks are page chrome, not reviews
MAX_REVIEWS_PER_PAGE = 100  # Cap per parsed page
MIN_RATING = 1
MAX_RATING = 5

# Pagination
MAX_PAGINATED_PAGES = 3  # Page cap for platforms that paginate reviews

# Scraping
DEFAULT_SCRAPE_CONCURRENCY = 3  # Concurrent source fetches within one job

# Queue
DEFAULT_JOB_RETENTION = 100  # Terminal jobs kept for inspection
DEFAULT_JOB_TIMEOUT = 1800  # Processing timeout per job (seconds)
DEFAULT_PURGE_INTERVAL = 3600  # Seconds between history sweeps
DEFAULT_MAX_CONCURRENT_JOBS = 1

# Analysis
DEFAULT_ANALYSIS_TEMPERATURE = 0.2
DEFAULT_ANALYSIS_MAX_TOKENS = 4000
MAX_PROMPT_REVIEWS = 400  # Reviews embedded in one analysis prompt
MAX_PROMPT_REVIEW_CHARS = 1200  # Per-review text cap inside the prompt

# AI discovery
DISCOVERY_TEMPERATURE = 0.3
DISCOVERY_MAX_TOKENS = 500

# Sync
DEFAULT_SYNC_LOOKBACK_DAYS = 7  # Completed reports re-synced by maintenance

# Plan caps on scraped sources (None = every verified source)
PLAN_SOURCE_LIMITS = {
    "free": 1,
    "paid": 2,
    "premium": None,
}
