"""Centralized application constants — single source of truth for hardcoded values."""

# --- Session ---
COOKIE_NAME = "learngate_session"

# --- Plans ---
PLAN_TYPES = ("monthly", "quarterly", "yearly")

# Fixed day counts, not calendar months
PLAN_DURATION_DAYS = {
    "monthly": 30,
    "quarterly": 90,
    "yearly": 360,
}

# Canonical price per plan type (major units, INR)
PLAN_PRICES = {
    "monthly": 299,
    "quarterly": 799,
    "yearly": 2499,
}

PLAN_DESCRIPTIONS = {
    "monthly": "Monthly subscription with full access to all courses",
    "quarterly": "Quarterly subscription with full access to all courses",
    "yearly": "Yearly subscription with full access to all courses",
}

TRIAL_DAYS = 3

# --- Subscription states ---
STATUS_TRIAL = "trial"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"
OPEN_STATUSES = (STATUS_TRIAL, STATUS_ACTIVE)
TERMINAL_STATUSES = (STATUS_EXPIRED, STATUS_CANCELLED)

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"

# --- Payment ledger states ---
ORDER_CREATED = "created"
ORDER_AUTHORIZED = "authorized"
ORDER_CAPTURED = "captured"
ORDER_FAILED = "failed"
OPEN_ORDER_STATUSES = (ORDER_CREATED, ORDER_AUTHORIZED)

# --- Razorpay ---
RAZORPAY_API_BASE = "https://api.razorpay.com/v1"
RAZORPAY_RECEIPT_MAX_LENGTH = 40
DEFAULT_CURRENCY = "INR"
CURRENCY_MINOR_UNITS = 100  # paise per rupee

# --- HTTP Client ---
HTTP_CONNECT_TIMEOUT = 10  # seconds
GATEWAY_TIMEOUT = 30  # seconds

# --- Worker ---
ARQ_MAX_JOBS = 10
ARQ_JOB_TIMEOUT = 600  # seconds (10 min)

# --- Retention ---
EXPIRED_SUBSCRIPTION_RETENTION_DAYS = 30
FAILED_PAYMENT_RETENTION_DAYS = 7
