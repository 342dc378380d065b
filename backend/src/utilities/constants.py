# ------------ Config ------------
SUBSCRIBER_QUEUE_SIZE = 50               # bounded per push subscriber outbox
POLL_WAIT_PERIOD = 30.0                  # seconds a pull request waits for a message
STORE_BACKEND = "memory"                 # memory | file | dynamo
STORAGE_FILE = "chat_messages.jsonl"     # used by the file backend
DYNAMO_TABLE = "ChatMessages"            # used by the dynamo backend
DYNAMO_REGION = "us-west-2"
LOG_LEVEL = "INFO"
HOST = "0.0.0.0"
PORT = 8080
# --------------------------------
