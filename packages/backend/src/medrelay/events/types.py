"""Protocol constants — request types, event names, collection kinds.

Learn: Centralizing wire names as constants prevents typos and makes it
easy to discover the whole protocol surface in one place.
"""

# ─── Requests (client → server "type") ───────────────────

VERIFY = "verify"
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
GET = "get"
POST = "post"
LOGOUT = "logout"

REQUEST_TYPES = (VERIFY, SUBSCRIBE, UNSUBSCRIBE, GET, POST, LOGOUT)

# ─── Responses (server → client "event", correlated by ref) ──

VERIFY_SUCCESS = "verify-success"
SUBSCRIBE_SUCCESS = "subscribe-success"
GET_SUCCESS = "get-success"
POST_SUCCESS = "post-success"
ERROR = "error"

# ─── Push events (live subscriptions, no ref) ────────────

APPOINTMENTS = "appointments"
CHATS = "chats"
MESSAGES = "messages"
USER = "user"

# ─── Collection kinds (request params "collection") ──────

COLLECTION_APPOINTMENTS = "appointments"
COLLECTION_CHATS = "chats"
COLLECTION_MESSAGES = "messages"
COLLECTION_USER = "user"
COLLECTION_DOCTORS = "doctors"
COLLECTION_CHAT_ID = "chat_id"

# post-only kinds
COLLECTION_MESSAGE = "message"
COLLECTION_SEEN = "seen"
COLLECTION_APPOINTMENT = "appointment"
