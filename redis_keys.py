REDIS_ROOM_KEY = "room:meta:{code}" # room code - JSON encoded room
REDIS_ROOM_INDEX_KEY = "room:index" # sorted set of room codes scored by last_activity
REDIS_SESSION_KEY = "session:{session_id}" # session id - JSON encoded participant
REDIS_SESSION_INDEX_KEY = "session:index" # sorted set of session ids scored by joined_at
REDIS_MESSAGE_SEQ_KEY = "seq:message_id" # next message id to hand out
REDIS_DISPLAY_NAME_SEQ_KEY = "seq:display_name" # last "User N" number handed out

# **Example `room:meta:{code}` value**
# {"code": "AB12CD", "creator_session_id": "...", "participants": [...],
#  "messages": [...], "created_at": 1700000000000000000, "last_activity": ...}
#
# **TTL**
# - Room and session keys get a Redis TTL of twice the session timeout so that
#   keys orphaned by a crashed sweep still disappear. Expiry itself is decided
#   from last_activity / joined_at, not from the key TTL.
