# --- REST Endpoints (relative to API_BASE_URL) ---
LOGIN_PATH = "/auth/login"
RENEW_ACCESS_TOKEN_PATH = "/auth/renew-access-token"
USER_INFO_PATH = "/user/get-user-info"
USER_PUBLIC_INFO_PATH = "/user/get-user-public-info"
VEHICLE_BY_ID_PATH = "/vehicle/public/get-vehicle-by-id"

RENTAL_STATUS_CONSTANTS_PATH = "/rental/constants/rental-status"
CHECK_AVAILABILITY_PATH = "/rental/check-availability"
RENTAL_CONFIRMATION_PATH = "/rental/create-rental-confirmation"
CREATE_RENTAL_PATH = "/rental/create-new-rental"
RENTAL_RECORD_PATH = "/rental/record"
RENTER_RENTALS_PATH = "/rental/renter/all"
VEHICLE_RENTALS_PATH = "/rental/vehicle/all"
OWNER_RENTALS_BY_STATUS_PATH = "/rental/vehicle-owner/status"
OWNER_DECISION_PATH = "/rental/owner-rental-decision"
CONFIRM_RECEIVED_PATH = "/rental/confirm-renter-received-vehicle"
CONFIRM_RETURNED_PATH = "/rental/confirm-renter-returned-vehicle"
DEPOSIT_PAYMENT_PATH = "/payment/deposit-payment"
REMAINING_PAYMENT_PATH = "/payment/remaining-payment-payment"

PREPARE_CONTRACT_PATH = "/rental/prepare-contract"
CREATE_CONTRACT_PATH = "/rental/create-contract"
RENTAL_CONTRACTS_PATH = "/rental/get-all-contracts-from-rental-id"
CONTRACT_BY_ID_PATH = "/rental/get-contract-by-id"
RENTER_SIGN_CONTRACT_PATH = "/rental/renter-sign-contract"
OWNER_SIGN_CONTRACT_PATH = "/rental/vehicle-owner-sign-contract"

CREATE_CHAT_SESSION_PATH = "/chat/create-chat-session"
ALL_CHAT_SESSIONS_PATH = "/chat/get-all-messages"
SESSION_MESSAGES_PATH = "/chat/get-messages-in-session"

# --- Realtime Events ---
EVENT_CONNECT = "connect"
EVENT_CONNECT_ERROR = "connect_error"
EVENT_DISCONNECT = "disconnect"
EVENT_JOIN_ROOM = "joinRoom"
EVENT_JOIN_CHAT = "joinChat"
EVENT_SEND_MESSAGE = "sendMessage"
EVENT_NEW_MESSAGE = "newMessage"
EVENT_CHAT_MESSAGE = "chatMessage"
EVENT_SESSION_UPDATED = "sessionUpdated"
EVENT_CHAT_NOTIFICATION = "Chat Notification"
EVENT_RENTAL_NOTIFICATION = "Rental Notification"

# --- Redis Keys ---
REDIS_ACCESS_TOKEN_KEY = "auth:access_token"
REDIS_REFRESH_TOKEN_KEY = "auth:refresh_token"

# --- Server Error Codes ---
ERROR_TOKEN_NOT_PROVIDED = 1111
ERROR_VEHICLE_NOT_FOUND = 2007
ERROR_NOT_VEHICLE_OWNER = 2008
ERROR_VEHICLE_ID_MISSING = 3001
ERROR_VEHICLE_NOT_AVAILABLE = 4001
ERROR_OWNER_OWN_VEHICLE = 4002
ERROR_NOT_RENTAL_OWNER = 4005
ERROR_RENTAL_WRONG_STATUS = 4007
ERROR_INVALID_DATES = 4012
ERROR_AVAILABILITY_FAILED = 4101
ERROR_CONFIRMATION_FAILED = 4102
ERROR_CREATE_RENTAL_FAILED = 4103
ERROR_VEHICLE_RENTALS_FAILED = 4107
ERROR_CREATE_CONTRACT_FAILED = 4113
ERROR_CHAT_SESSION_EXISTS = 5001
ERROR_RENTAL_NOT_FOUND = 8004
ERROR_RENTAL_CANCELLED = 8005
ERROR_RENTAL_NOT_DEPOSIT_PENDING = 8006
ERROR_DEPOSIT_PAYMENT_FAILED = 8106

CONFLICT_ERROR_CODES = {
    ERROR_VEHICLE_NOT_AVAILABLE,
    ERROR_RENTAL_WRONG_STATUS,
    ERROR_CHAT_SESSION_EXISTS,
    ERROR_RENTAL_CANCELLED,
    ERROR_RENTAL_NOT_DEPOSIT_PENDING,
}
NOT_FOUND_ERROR_CODES = {ERROR_VEHICLE_NOT_FOUND, ERROR_RENTAL_NOT_FOUND}
PERMISSION_ERROR_CODES = {ERROR_NOT_VEHICLE_OWNER, ERROR_OWNER_OWN_VEHICLE, ERROR_NOT_RENTAL_OWNER}
VALIDATION_ERROR_CODES = {ERROR_VEHICLE_ID_MISSING, ERROR_INVALID_DATES}

# --- Paging ---
DEFAULT_PAGE_SIZE = 10
