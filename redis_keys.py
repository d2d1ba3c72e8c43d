REDIS_BROADCAST_CHANNEL = "ws-broadcast" # single channel shared by every instance

# **Example message on `ws-broadcast`**
# - `id` = uuid hex, unique per broadcast (dedupe key)
# - `origin` = instance id of the publisher
# - `roomId` = room the broadcast targets
# - `type` = server -> client message type (`room-state`, `revealed`, ...)
# - `data` = payload object
# - `excludeId` = connection id that must not receive it (optional)
