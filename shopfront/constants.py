# persisted client storage keys
KEY_AUTH_TOKEN = "auth_token"
KEY_AUTH_USER = "auth_user"
KEY_CART = "cart"
KEY_WISHLIST = "wishlist"

ROLE_USER = "user"
ROLE_ADMIN = "admin"

# backend cart schema bounds
MIN_LINE_QTY = 1
MAX_LINE_QTY = 100

ORDER_STATUSES = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}
CANCELLABLE_STATUSES = ("pending", "confirmed")

PRODUCT_SORTS = ("name_asc", "name_desc", "price_asc", "price_desc", "rating_desc")
REVIEW_SORTS = ("newest", "oldest", "rating_high", "rating_low", "helpful", "verified")

# checkout preview, mirrors the backend order route
FREE_SHIPPING_THRESHOLD = 100.0
SHIPPING_COST = 10.0
TAX_RATE = 0.08

MSG_NETWORK_ERROR = "Network error. Please try again."
MSG_ADMIN_REQUIRED = "Access denied. Admin privileges required."
MSG_LOGIN_REQUIRED = "Please log in first"
MSG_INVALID_RESPONSE = "Invalid response from server"
