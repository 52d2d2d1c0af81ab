REDIS_META_KEY = "room:meta:{slug}" # room id - hash with the whole room record
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel for invalidations
REDIS_DELETED_ROOMS_KEY = "rooms:deleted" # set of room ids that may never be reused
REDIS_USER_ROOMS_KEY = "user:rooms:{identity}" # user email - set of room ids the user was granted
REDIS_INBOX_KEY = "inbox:{identity}" # user email - list of pending notifications, newest first
REDIS_USER_CHANNEL = "user:channel:{identity}" # user email - pub/sub channel for notifications

# **`room:meta:{id}` hash fields**
# - `metadata` = json object (creatorId, email, title, chats, tasks, ...)
# - `usersAccesses` = json object, email -> list of scopes
# - `defaultAccesses` = json list of scopes
# - `created_at` / `updated_at` = ISO timestamps
# - `version` = integer, bumped on every update
