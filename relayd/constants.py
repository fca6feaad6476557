# relayd protocol constants (defaults, commands and server->client text)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8888
DEFAULT_MAX_CONNECTIONS = 50

LINE_ENCODING = "utf-8"
MAX_LINE_BYTES = 4096

# Commands (matched case-insensitively on the first token)
CMD_QUIT = "/quit"
CMD_LIST = "/list"
CMD_MSG = "/msg"
CMD_BROADCAST = "/broadcast"

# Handshake
PROMPT_USERNAME = "Enter username: "
REPLY_INVALID_USERNAME = "Invalid username. Please try again."
REPLY_USERNAME_TAKEN = "Username already taken. Please try again."

WELCOME_LINES = (
    "Welcome {name}! You are now connected to the chat server.",
    "Commands:",
    "  /list - Show online users",
    "  /msg <username> <message> - Send private message",
    "  /broadcast <message> - Send message to all users",
    "  /quit - Disconnect from server",
    "You can also just type a message to broadcast to everyone.",
)

# Announcements
NOTICE_JOINED = "{name} joined the chat!"
NOTICE_LEFT = "{name} left the chat!"
NOTICE_SERVER_FULL = "Server is full. Try again later."
NOTICE_SHUTDOWN = "Server is shutting down."

# Chat lines
FMT_CHAT = "[{ts}] {name}: {text}"
FMT_BROADCAST = "[{ts}] {name} (broadcast): {text}"
FMT_PRIVATE = "[{ts}] {name} (private): {text}"
TIMESTAMP_FORMAT = "%H:%M:%S"

# Replies to the issuer
REPLY_GOODBYE = "Goodbye!"
REPLY_ONLINE_USERS = "Online users ({count}): {names}"
REPLY_PRIVATE_SENT = "Private message sent to {name}"
REPLY_NOT_FOUND = "User {name} not found or offline"
REPLY_BROADCAST_SENT = "Message broadcasted to all users."
REPLY_USAGE_MSG = "Usage: /msg <username> <message>"
REPLY_USAGE_BROADCAST = "Usage: /broadcast <message>"
REPLY_INVALID_COMMAND = (
    "Invalid command. Available commands: /list, /msg, /broadcast, /quit"
)
REPLY_LINE_TOO_LONG = "Line too long (max {limit} bytes)."

# Thread names identify the connection a line belongs to.
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
