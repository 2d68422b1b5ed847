"""Shared constants across the application."""

# Line item custom attributes written by the storefront try-on widget
TRY_ON_MARKER_KEY = "_sbb_try_on"
TRY_ON_MARKER_VALUE = "true"
SESSION_ID_KEY = "_sbb_session_id"

# Usage event types
EVENT_IMAGE_GENERATED = "image_generated"
EVENT_ADD_TO_CART = "add_to_cart"
EVENT_LIMIT_REACHED = "limit_reached"
USAGE_EVENT_TYPES = [
    EVENT_IMAGE_GENERATED,
    EVENT_ADD_TO_CART,
    EVENT_LIMIT_REACHED,
]

# Plans
FREE_PLAN = "free"

# App status values
APP_STATUS_DISABLED = "disabled"
APP_STATUS_ACTIVE = "active"

# Analytics windows
REVENUE_STATS_ORDER_LIMIT = 1000
USAGE_STATS_EVENT_LIMIT = 1000
DEFAULT_ORDER_LIST_LIMIT = 100
DEFAULT_EVENT_LIST_LIMIT = 100
TOP_PRODUCTS_LIMIT = 5

# Shopify GraphQL line items fetched per order
LINE_ITEMS_PER_ORDER = 250
