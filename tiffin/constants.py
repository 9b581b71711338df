"""Centralized application constants: single source of truth for hardcoded values."""

# --- Billing ---
TRIAL_DURATION_DAYS = 30
GRACE_PERIOD_DAYS = 3
FALLBACK_PERIOD_DAYS = 30  # used when the processor omits current_period_end
DEFAULT_BOOST_PRIORITY = 1

# --- Cache ---
SUBSCRIPTION_CACHE_TTL = 300  # seconds (5 min)
PLANS_CACHE_TTL = 3600  # seconds (1 hour)

# --- Stripe ---
CHECKOUT_SUCCESS_PATH = "/dashboard/subscription?status=success&plan={plan_type}"
CHECKOUT_CANCEL_PATH = "/dashboard/subscription?status=cancelled"

# --- Worker ---
ARQ_MAX_JOBS = 10
ARQ_JOB_TIMEOUT = 300  # seconds (5 min)
SWEEP_CRON_MINUTES = {0, 15, 30, 45}

# --- Validation ---
CANCEL_REASON_MIN_LENGTH = 5
CANCEL_REASON_MAX_LENGTH = 500
ORDER_MAX_ITEMS = 20
ORDER_ITEM_MAX_QUANTITY = 50
